"""2D laser scan matching for mobile-robot odometry.

This package contains the reusable components of the scan matcher:
- slam: scan model, SE(2) transforms, jump tables, correspondence search,
  transform estimation and the ICP driver
"""

__version__ = "0.1.0"
