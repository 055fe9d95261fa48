# donation_carbon/shares.py
# ---------------------------------------------------------
# Share normalization for sibling proportions.
#
# Used at two composition levels:
#   - dish level:      plate_share per component, target 1.0
#   - component level: share_of_component per ingredient, target 100
#
# The two levels deliberately use different policies for
# missing values:
#   - dish level fills gaps optimistically (equal split of the
#     remainder, equal split of everything if nothing is known)
#   - component level never fills gaps; whatever the known shares
#     do not cover is reported back as an unallocated remainder
# ---------------------------------------------------------

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from donation_carbon.errors import DataIntegrityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedShares:
    target: float
    # Per entry, in target units (None = share unknown and not filled)
    values: list[Optional[float]]
    # Multiplier applied to the known values (1.0 if untouched)
    scale: float
    rescaled: bool
    equal_split: bool

    @property
    def fractions(self) -> list[Optional[float]]:
        """Values as fractions of the target (0..1)."""
        return [None if v is None else v / self.target for v in self.values]

    @property
    def allocated_fraction(self) -> float:
        total = sum(v for v in self.values if v is not None)
        return min(max(total / self.target, 0.0), 1.0)

    @property
    def remainder_fraction(self) -> float:
        """Part of the parent not covered by any known share."""
        return 1.0 - self.allocated_fraction

    @property
    def has_missing(self) -> bool:
        return any(v is None for v in self.values)


def to_number(value) -> Optional[float]:
    """None / NaN / inf / garbage -> None, anything numeric -> float."""
    if value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def normalize_shares(
    values: Sequence,
    target: float,
    close_eps: float,
    over_eps: float,
    *,
    fill_missing: bool,
    equal_split_fallback: bool,
    label: str,
) -> NormalizedShares:
    """
    Turn a list of optional sibling shares into a consistent set.

    close_eps / over_eps are relative to target:
      - sum within target * (1 +- close_eps) and nothing missing -> rescale to target
      - sum above target * (1 + over_eps)                        -> DataIntegrityError

    `label` identifies the parent record in error messages,
    e.g. "component_id=12" or "dish_id=3".
    """
    if not values:
        return NormalizedShares(target, [], 1.0, False, False)

    provided = [to_number(v) for v in values]
    provided = [None if v is None else clamp(v, 0.0, target) for v in provided]

    known_sum = sum(v for v in provided if v is not None)

    # Nothing usable at all
    if known_sum <= 0:
        if equal_split_fallback:
            eq = target / len(provided)
            logger.debug("%s: no usable shares, equal split across %d", label, len(provided))
            return NormalizedShares(target, [eq] * len(provided), 1.0, False, True)
        return NormalizedShares(target, provided, 1.0, False, False)

    shares = list(provided)

    # Dish level only: spread the positive remainder over the gaps
    if fill_missing:
        missing_idx = [i for i, v in enumerate(shares) if v is None]
        remainder = target - known_sum
        add = remainder / len(missing_idx) if missing_idx and remainder > 0 else 0.0
        for i in missing_idx:
            shares[i] = add

    total = sum(v for v in shares if v is not None)
    has_missing = any(v is None for v in shares)

    if total > target * (1 + over_eps):
        raise DataIntegrityError(
            f"shares exceed {target:g}",
            record=label,
            observed_sum=total,
        )

    scale = 1.0
    rescaled = False
    if not has_missing and abs(total - target) <= target * close_eps:
        scale = target / total
        rescaled = True
    elif total > target:
        # Within the hard tolerance but not rescalable (gaps present):
        # trim the overflow so children never exceed the parent.
        scale = target / total

    if scale != 1.0:
        shares = [None if v is None else v * scale for v in shares]
        logger.debug("%s: shares sum %.4f scaled by %.6f", label, total, scale)

    return NormalizedShares(target, shares, scale, rescaled, False)
