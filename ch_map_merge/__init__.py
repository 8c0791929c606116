"""Map merging examples.

Examples:
    - example_map_merging.py: align and merge occupancy grids from several
      mapping sessions, from map_server files or generated inline

Dependencies:
    - mapmerge: estimation, composition, map files, synthetic maps
    - matplotlib: Visualization
    - numpy: Numerical operations
"""

__all__ = []
