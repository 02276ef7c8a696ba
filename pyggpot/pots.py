"""
Pot Ledger Module

Add, remove and list coins in pots. Each operation runs in its own storage
transaction; removal shakes the pot snapshot and applies the resulting
mutations all-or-nothing.
"""

import random
import time
from typing import Iterable, List, Optional, Tuple, Union

from .coins import CoinCount, Denomination
from .errors import ConsistencyError, StoreError, ValidationError
from .logging_config import get_logger, log_action
from .sampler import ShakeResult, shake_pot
from .storage import StorageInterface


CoinEntry = Union[CoinCount, Tuple[Union[Denomination, str], int]]


def create_rng(seed: Optional[int] = None) -> random.Random:
    """
    Create the process-wide randomness source.

    Seeded from the clock unless an explicit seed is given, which makes
    removals reproducible.
    """
    if seed is None:
        seed = time.time_ns()
    return random.Random(seed)


# Pot ids and coin counts are 32-bit signed integers on the wire
MAX_POT_ID = 2 ** 31 - 1
MAX_COIN_COUNT = 2 ** 31 - 1


def _validate_pot_id(pot_id) -> None:
    if isinstance(pot_id, bool) or not isinstance(pot_id, int) or pot_id <= 0:
        raise ValidationError(f"Pot id must be a positive integer, got {pot_id!r}")
    if pot_id > MAX_POT_ID:
        raise ValidationError(f"Pot id must be at most {MAX_POT_ID}, got {pot_id}")


def _validate_count(count, what: str) -> None:
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ValidationError(f"{what} must be a non-negative integer, got {count!r}")
    if count > MAX_COIN_COUNT:
        raise ValidationError(f"{what} must be at most {MAX_COIN_COUNT}, got {count}")


class PotLedger:
    """
    Coin operations over a ledger store.

    The randomness source is injected so that removals can be replayed with a
    fixed seed; it is shared by every removal this ledger performs.
    """

    def __init__(self, storage: StorageInterface, rng: Optional[random.Random] = None):
        self.storage = storage
        self.rng = rng if rng is not None else create_rng()
        self.logger = get_logger("pyggpot.pots")

    def _validate_entries(self, entries: Iterable[CoinEntry]) -> List[CoinCount]:
        """Validate the whole batch before anything is written"""
        validated = []
        for position, entry in enumerate(entries):
            if isinstance(entry, CoinCount):
                kind, count = entry.denomination, entry.count
            else:
                try:
                    kind, count = entry
                except (TypeError, ValueError):
                    raise ValidationError(f"Coin entry {position} is not a (denomination, count) pair")
            denomination = Denomination.parse(kind)
            _validate_count(count, f"Coin count for entry {position}")
            validated.append(CoinCount(denomination, count))
        return validated

    def add_coins(self, pot_id: int, entries: Iterable[CoinEntry]) -> List[CoinCount]:
        """
        Add coins to a pot, one new row per entry.

        Rows are never merged with existing rows of the same denomination.
        A single invalid entry rejects the whole batch before any insert.

        Returns:
            The inserted coins, in the order given
        """
        try:
            _validate_pot_id(pot_id)
            coins = self._validate_entries(entries)
        except ValidationError as e:
            log_action(self.logger, "warning", f"Rejected coin batch: {e}",
                       pot_id=pot_id, action="coins_add_rejected")
            raise

        try:
            with self.storage.atomic():
                for coin in coins:
                    self.storage.insert_row(pot_id, coin.denomination, coin.count)
        except StoreError as e:
            log_action(self.logger, "error", f"Storage failure while adding coins: {e}",
                       pot_id=pot_id, action="coins_add_failed")
            raise

        log_action(
            self.logger, "info", f"Added {len(coins)} coin rows to pot {pot_id}",
            pot_id=pot_id, action="coins_added",
            extra={"coins": [coin.to_dict() for coin in coins]}
        )
        return coins

    def remove_coins(self, pot_id: int, count: int) -> List[CoinCount]:
        """
        Shake up to count coins out of a pot.

        Asking for more coins than the pot holds is not an error; everything
        left is removed.

        Returns:
            Removed coins per denomination (GOLD, SILVER, BRONZE order)
        """
        try:
            _validate_pot_id(pot_id)
            _validate_count(count, "Removal count")
        except ValidationError as e:
            log_action(self.logger, "warning", f"Rejected removal: {e}",
                       pot_id=pot_id, action="coins_remove_rejected")
            raise

        try:
            with self.storage.atomic():
                rows = self.storage.fetch_rows(pot_id)
                result = shake_pot(rows, count, self.rng)
                self.apply_shake(result)
        except ConsistencyError as e:
            log_action(self.logger, "error", f"Ledger inconsistency while shaking pot: {e}",
                       pot_id=pot_id, action="coins_remove_failed")
            raise
        except StoreError as e:
            log_action(self.logger, "error", f"Storage failure while shaking pot: {e}",
                       pot_id=pot_id, action="coins_remove_failed")
            raise

        removed = result.removed_coins()
        log_action(
            self.logger, "info", f"Removed {result.total_removed} of {count} requested coins",
            pot_id=pot_id, action="coins_removed",
            extra={
                "requested": count,
                "removed": [coin.to_dict() for coin in removed],
                "rows_updated": len(result.updated),
                "rows_deleted": len(result.deleted)
            }
        )
        return removed

    def apply_shake(self, result: ShakeResult) -> None:
        """
        Persist a shake's row mutations.

        Must run inside an open transaction; a failing write propagates so the
        enclosing atomic() block rolls every mutation back.
        """
        for row in result.updated:
            self.storage.update_row(row)
        for row in result.deleted:
            self.storage.delete_row(row.id)

    def list_coins(self, pot_id: int) -> List[CoinCount]:
        """List a pot's rows as (denomination, count) pairs, one per row"""
        _validate_pot_id(pot_id)
        with self.storage.atomic():
            rows = self.storage.fetch_rows(pot_id)
        return [row.to_coin_count() for row in rows]
