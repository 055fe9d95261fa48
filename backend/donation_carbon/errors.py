# donation_carbon/errors.py
# ---------------------------------------------------------
# Exceptions raised by the carbon engine.
#
# Only corrupted input raises. Missing mappings, missing
# factors and missing yields are NOT errors: they show up as
# "unmapped" leaves in the breakdown.
# ---------------------------------------------------------

from __future__ import annotations


class DataIntegrityError(Exception):
    """
    Input data that cannot be allocated without inventing numbers.

    Raised for:
      - share sums above the hard-over tolerance (dish or component level)
      - a donation with neither a dish nor a component target
      - a donation with a non-positive weight
    """

    def __init__(
        self,
        message: str,
        *,
        record: str | None = None,
        observed_sum: float | None = None,
        donation_id: int | None = None,
    ):
        self.message = message
        self.record = record
        self.observed_sum = observed_sum
        self.donation_id = donation_id
        super().__init__(str(self))

    def with_donation(self, donation_id: int) -> "DataIntegrityError":
        return DataIntegrityError(
            self.message,
            record=self.record,
            observed_sum=self.observed_sum,
            donation_id=donation_id,
        )

    def __str__(self) -> str:
        parts = []
        if self.donation_id is not None:
            parts.append(f"donation_id={self.donation_id}")
        if self.record:
            parts.append(self.record)
        prefix = " ".join(parts)
        msg = f"{prefix}: {self.message}" if prefix else self.message
        if self.observed_sum is not None:
            msg += f" (sum={self.observed_sum:.4f})"
        return msg


class DonationNotFoundError(LookupError):
    def __init__(self, donation_id: int):
        self.donation_id = donation_id
        super().__init__(f"Donation {donation_id} not found")
