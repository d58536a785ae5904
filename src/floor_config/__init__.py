"""
Top-level package for the floor-config project.

The page store (per-channel floor and image configuration) lives under
`floor_config.page_store`.
"""

__all__: list[str] = []
