"""Conversion of raw laser range readings into scans.

A laser scanner reports one range per ray of its sweep together with the
sweep metadata (first angle, angular step, valid range window). This module
turns such a message into a `Scan` for the matcher.

Reading policy:
    - NaN readings carry no information and are dropped.
    - Readings beyond `range_limit` (including +inf) are clamped to
      `range_limit` and kept as maximum-range points.
    - Remaining readings outside [range_min, range_max] are dropped.

Author: Li-Ta Hsu
Date: December 2025
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .types import Scan

RANGE_LIMIT = 10.0  # meters, readings beyond this are clamped


@dataclass
class ScanConfig:
    """
    Sweep metadata needed to turn raw readings into a scan.

    Attributes:
        angle_min: Bearing of the first ray (radians).
        angle_increment: Angular step between rays (radians, > 0).
        range_min: Smallest valid range (meters).
        range_max: Largest valid range (meters).
        range_limit: Readings above this are clamped to it (meters).
                     None disables clamping.
    """

    angle_min: float = -np.pi
    angle_increment: float = 2 * np.pi / 360
    range_min: float = 0.1
    range_max: float = 30.0
    range_limit: Optional[float] = RANGE_LIMIT

    def __post_init__(self) -> None:
        """Validate sweep metadata."""
        if not np.isfinite(self.angle_min):
            raise ValueError(f"angle_min must be finite, got {self.angle_min}")
        if not (np.isfinite(self.angle_increment) and self.angle_increment > 0):
            raise ValueError(
                f"angle_increment must be positive, got {self.angle_increment}"
            )
        if self.range_min < 0:
            raise ValueError(f"range_min must be non-negative, got {self.range_min}")
        if self.range_min > self.range_max:
            raise ValueError(
                f"range_min ({self.range_min}) must not exceed range_max ({self.range_max})"
            )
        if self.range_limit is not None and self.range_limit <= 0:
            raise ValueError(f"range_limit must be positive, got {self.range_limit}")


def valid_reading_mask(
    ranges: np.ndarray,
    range_min: float,
    range_max: float,
    range_limit: Optional[float] = RANGE_LIMIT,
) -> np.ndarray:
    """
    Boolean mask of the readings that become points.

    Args:
        ranges: Raw readings, shape (N,).
        range_min: Smallest valid range (meters).
        range_max: Largest valid range (meters).
        range_limit: Clamp threshold, or None.

    Returns:
        Boolean array of shape (N,).
    """
    ranges = np.asarray(ranges, dtype=np.float64)
    not_nan = ~np.isnan(ranges)
    in_window = not_nan & (ranges >= range_min) & (ranges <= range_max)
    if range_limit is None:
        return in_window
    return in_window | (not_nan & (ranges > range_limit))


def build_scan(
    ranges: Union[Sequence[float], np.ndarray],
    angle_min: float,
    angle_increment: float,
    range_min: float,
    range_max: float,
    range_limit: Optional[float] = RANGE_LIMIT,
) -> Scan:
    """
    Build a scan from one sweep of raw range readings.

    Reading i has bearing angle_min + i * angle_increment. Invalid readings
    are dropped silently (they are ordinary sensor noise); readings beyond
    `range_limit` become points at exactly `range_limit`.

    Args:
        ranges: Raw readings in sweep order, shape (N,). NaN and ±inf allowed.
        angle_min: Bearing of reading 0 (radians).
        angle_increment: Angular step between readings (radians, > 0).
        range_min: Smallest valid range (meters).
        range_max: Largest valid range (meters).
        range_limit: Clamp threshold in meters (default: 10.0), None disables.

    Returns:
        Scan with at most N points, in sweep order. `scan.indices` holds the
        reading index of every kept point.

    Raises:
        ValueError: If ranges is not 1D or the metadata is inconsistent.

    Examples:
        >>> scan = build_scan([1.0, np.nan, 50.0, 0.01], 0.0, np.pi / 2, 0.1, 30.0)
        >>> scan.ranges
        array([ 1., 10.])
        >>> scan.indices
        array([0, 2])
    """
    config = ScanConfig(
        angle_min=angle_min,
        angle_increment=angle_increment,
        range_min=range_min,
        range_max=range_max,
        range_limit=range_limit,
    )
    return build_scan_from_config(ranges, config)


def build_scan_from_config(
    ranges: Union[Sequence[float], np.ndarray], config: ScanConfig
) -> Scan:
    """Same as `build_scan`, with the metadata bundled in a `ScanConfig`."""
    ranges = np.asarray(ranges, dtype=np.float64)
    if ranges.ndim != 1:
        raise ValueError(f"ranges must be 1D, got shape {ranges.shape}")

    mask = valid_reading_mask(
        ranges, config.range_min, config.range_max, config.range_limit
    )
    indices = np.flatnonzero(mask)
    kept = ranges[indices]

    if config.range_limit is not None:
        kept = np.where(kept > config.range_limit, config.range_limit, kept)

    bearings = config.angle_min + config.angle_increment * indices
    return Scan.from_polar(kept, bearings, indices=indices)
