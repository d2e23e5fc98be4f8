"""
tileserver test suite

Structure:
- unit/: Unit tests for individual components (metadata, headers, paths, mercator, sources, config)
- integration/: HTTP-level tests of the tile and TileJSON routes
"""
