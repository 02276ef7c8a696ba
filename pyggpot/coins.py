"""
Coin Types Module

Denominations, persisted ledger rows and the (denomination, count) pairs
exchanged with callers.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import ValidationError


class Denomination(Enum):
    """Coin kinds held in a pot"""
    UNKNOWN = "unknown"  # Sentinel, never persisted or removed
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"

    @classmethod
    def parse(cls, value: Union["Denomination", str]) -> "Denomination":
        """
        Resolve a caller supplied denomination.

        Accepts a member or its wire name (case-insensitive). UNKNOWN and
        anything unrecognised raise ValidationError.
        """
        if isinstance(value, cls):
            denomination = value
        elif isinstance(value, str):
            try:
                denomination = cls(value.strip().lower())
            except ValueError:
                raise ValidationError(f"Unrecognized denomination: {value!r}")
        else:
            raise ValidationError(f"Unrecognized denomination: {value!r}")

        if denomination not in PHYSICAL_DENOMINATIONS:
            raise ValidationError(f"Unrecognized denomination: {value!r}")
        return denomination


# Fixed order used for range accumulation in the sampler and for summaries
PHYSICAL_DENOMINATIONS = (Denomination.GOLD, Denomination.SILVER, Denomination.BRONZE)


@dataclass(frozen=True)
class CoinCount:
    """A (denomination, count) pair as seen by callers"""
    denomination: Denomination
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.denomination.value, "count": self.count}


@dataclass(frozen=True)
class CoinRow:
    """
    One persisted ledger row.

    Rows are immutable values; a changed count is expressed with
    with_count(), which returns a new row.
    """
    id: int
    pot_id: int
    denomination: Denomination
    count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_count(self, count: int) -> "CoinRow":
        """Copy of this row holding a different count"""
        return replace(self, count=count)

    def to_coin_count(self) -> CoinCount:
        return CoinCount(self.denomination, self.count)

