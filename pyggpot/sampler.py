"""
Proportional Sampler Module

Removes coins from a pot snapshot one at a time, choosing each coin's
denomination with probability proportional to that denomination's share of
what is still in the pot. Pure: no storage access, no global randomness, and
the input rows are never modified.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .coins import CoinCount, CoinRow, Denomination, PHYSICAL_DENOMINATIONS
from .errors import ConsistencyError, ValidationError


@dataclass
class ShakeResult:
    """
    Outcome of shaking a pot.

    removed maps each denomination to the number of coins taken. updated and
    deleted hold the post-removal rows, in row order: rows whose count went
    down but stayed positive, and every row at zero, including rows that were
    already empty in the snapshot.
    """
    removed: Dict[Denomination, int] = field(default_factory=dict)
    updated: List[CoinRow] = field(default_factory=list)
    deleted: List[CoinRow] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())

    def removed_coins(self) -> List[CoinCount]:
        """Removal summary in GOLD, SILVER, BRONZE order, skipping zeros"""
        return [
            CoinCount(denomination, self.removed[denomination])
            for denomination in PHYSICAL_DENOMINATIONS
            if self.removed.get(denomination, 0) > 0
        ]


def select_denomination(index: int, aggregates: Dict[Denomination, int]) -> Denomination:
    """
    Map a draw in [0, total) to a denomination.

    Ranges are laid out GOLD, SILVER, BRONZE. BRONZE takes every index past
    the first two ranges without an upper bound check; this is correct because
    the three aggregates always sum to total.
    """
    gold = aggregates[Denomination.GOLD]
    silver = aggregates[Denomination.SILVER]
    if index < gold:
        return Denomination.GOLD
    if index < gold + silver:
        return Denomination.SILVER
    return Denomination.BRONZE


def shake_pot(rows: Sequence[CoinRow], count: int, rng) -> ShakeResult:
    """
    Remove up to count coins from a snapshot of one pot's rows.

    Each draw is re-weighted against the coins still remaining, so late draws
    reflect the depleted pot. Within a denomination coins come off the first
    row (in row id order) that still has any. Stops early, without error, when
    the pot runs dry.

    Args:
        rows: Snapshot of the pot's rows
        count: Number of coins requested
        rng: Randomness source with randrange(k) -> uniform int in [0, k),
            e.g. random.Random

    Returns:
        ShakeResult with the removal summary and the rows to update/delete

    Raises:
        ValidationError: count is negative
        ConsistencyError: row bookkeeping disagrees with the aggregates
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ValidationError(f"Removal count must be a non-negative integer, got {count!r}")

    ordered = sorted(rows, key=lambda row: row.id)
    remaining: Dict[int, int] = {}
    aggregates: Dict[Denomination, int] = {d: 0 for d in PHYSICAL_DENOMINATIONS}
    for row in ordered:
        if row.denomination not in aggregates:
            raise ConsistencyError(
                f"Coin row {row.id} in pot {row.pot_id} has invalid denomination "
                f"{row.denomination.value}"
            )
        if row.count < 0:
            raise ConsistencyError(f"Coin row {row.id} in pot {row.pot_id} has negative count")
        remaining[row.id] = row.count
        aggregates[row.denomination] += row.count
    total = sum(aggregates.values())

    result = ShakeResult()
    for _ in range(count):
        if total == 0:
            break

        denomination = select_denomination(rng.randrange(total), aggregates)
        aggregates[denomination] -= 1
        total -= 1

        for row in ordered:
            if row.denomination == denomination and remaining[row.id] > 0:
                remaining[row.id] -= 1
                break
        else:
            raise ConsistencyError(
                f"No {denomination.value} coins left in rows while aggregate says otherwise"
            )

        result.removed[denomination] = result.removed.get(denomination, 0) + 1

    for row in ordered:
        new_count = remaining[row.id]
        if new_count == 0:
            # Empty rows go, whether drained now or already empty
            result.deleted.append(row.with_count(0))
        elif new_count != row.count:
            result.updated.append(row.with_count(new_count))

    return result
