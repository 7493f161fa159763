"""Laser scan-matching odometry examples.

Examples:
    - example_scan_odometry.py: Ray-cast room, ICP odometry along a
      trajectory, strategy comparison counts

Dependencies:
    - laser_icp.slam: Scans, jump tables, ICP, pose accumulation
    - matplotlib: Visualization
    - tqdm: Progress reporting
    - numpy: Numerical operations

Author: Li-Ta Hsu
Date: December 2025
"""

__version__ = "0.1.0"

__all__ = []
