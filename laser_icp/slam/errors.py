"""Exceptions raised by the scan-matching engine."""


class InsufficientCorrespondences(ValueError):
    """Raised when an ICP iteration cannot estimate a transform.

    Covers fewer than two valid point pairs as well as numerically degenerate
    pair sets (zero total weight, coincident points, failed SVD). The ICP
    driver catches it, keeps the previous transform and keeps iterating until
    its consecutive-failure budget is spent.

    Attributes:
        num_valid: Number of valid correspondences seen when the error occurred.
    """

    def __init__(self, message: str, num_valid: int = 0):
        super().__init__(message)
        self.num_valid = num_valid
