"""
Test suite for pot ledger operations

Tests adding, shaking and listing coins end to end against the storage
backends, including atomicity when a write fails part way through.
"""

import logging
import pytest
import random

from pyggpot.coins import CoinCount, Denomination
from pyggpot.errors import ConsistencyError, StoreError, ValidationError
from pyggpot.logging_config import correlation_context
from pyggpot.pots import MAX_COIN_COUNT, MAX_POT_ID, PotLedger, create_rng
from pyggpot.storage import InMemoryStorage, SQLiteStorage


GOLD = Denomination.GOLD
SILVER = Denomination.SILVER
BRONZE = Denomination.BRONZE


class ZeroRandom:
    """Always draws the lowest index"""

    def randrange(self, k):
        return 0


class FailingDeleteMixin:
    """Makes every delete fail"""

    def delete_row(self, row_id):
        raise StoreError(f"Simulated failure deleting row {row_id}")


class FailingDeleteStorage(FailingDeleteMixin, InMemoryStorage):
    """In-memory storage whose deletes always fail"""


class FailingDeleteSQLiteStorage(FailingDeleteMixin, SQLiteStorage):
    """SQLite storage whose deletes always fail"""


class FailingInsertStorage(InMemoryStorage):
    """In-memory storage that fails on the nth insert"""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on
        self.inserts = 0

    def insert_row(self, pot_id, denomination, count):
        self.inserts += 1
        if self.inserts == self.fail_on:
            raise StoreError("Simulated insert failure")
        return super().insert_row(pot_id, denomination, count)


def as_pairs(coins):
    return [(coin.denomination, coin.count) for coin in coins]


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(":memory:")
    yield backend
    backend.close()


@pytest.fixture
def ledger(storage):
    return PotLedger(storage, random.Random(42))


@pytest.fixture(params=["memory", "sqlite"])
def failing_delete_storage(request):
    if request.param == "memory":
        backend = FailingDeleteStorage()
    else:
        backend = FailingDeleteSQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestAddCoins:
    """Test adding coins"""

    def test_add_returns_confirmation(self, ledger):
        coins = ledger.add_coins(1, [(GOLD, 2), (BRONZE, 8)])

        assert as_pairs(coins) == [(GOLD, 2), (BRONZE, 8)]

    def test_add_then_list_shows_unmerged_rows(self, ledger):
        ledger.add_coins(1, [(GOLD, 2), (SILVER, 1)])
        ledger.add_coins(1, [(GOLD, 5)])

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 2), (SILVER, 1), (GOLD, 5)]

    def test_add_accepts_wire_names_and_coin_counts(self, ledger):
        coins = ledger.add_coins(1, [("gold", 1), ("SILVER", 2), CoinCount(BRONZE, 3)])

        assert as_pairs(coins) == [(GOLD, 1), (SILVER, 2), (BRONZE, 3)]

    def test_add_zero_count_entry(self, ledger):
        ledger.add_coins(1, [(SILVER, 0)])

        assert as_pairs(ledger.list_coins(1)) == [(SILVER, 0)]

    def test_negative_count_rejects_whole_batch(self, ledger, storage):
        """Scenario: a batch with one count of -1 persists nothing"""
        with pytest.raises(ValidationError, match="non-negative"):
            ledger.add_coins(1, [(GOLD, 3), (SILVER, -1), (BRONZE, 4)])

        assert ledger.list_coins(1) == []
        assert storage.count_rows() == 0

    @pytest.mark.parametrize("kind", ["platinum", "unknown", Denomination.UNKNOWN, 7, None])
    def test_unrecognized_denomination_rejected(self, ledger, kind):
        with pytest.raises(ValidationError, match="Unrecognized denomination"):
            ledger.add_coins(1, [(GOLD, 1), (kind, 1)])

        assert ledger.list_coins(1) == []

    @pytest.mark.parametrize("count", [1.5, "3", True])
    def test_non_integer_count_rejected(self, ledger, count):
        with pytest.raises(ValidationError):
            ledger.add_coins(1, [(GOLD, count)])

    def test_malformed_entry_rejected(self, ledger):
        with pytest.raises(ValidationError, match="not a"):
            ledger.add_coins(1, [(GOLD, 1, 2)])

    @pytest.mark.parametrize("count", [MAX_COIN_COUNT + 1, 2 ** 63, 10 ** 30])
    def test_oversized_count_rejects_whole_batch(self, ledger, storage, count):
        with pytest.raises(ValidationError, match="at most"):
            ledger.add_coins(1, [(GOLD, 1), (SILVER, count)])

        assert storage.count_rows() == 0

    def test_largest_count_is_stored(self, ledger):
        ledger.add_coins(1, [(BRONZE, MAX_COIN_COUNT)])

        assert as_pairs(ledger.list_coins(1)) == [(BRONZE, MAX_COIN_COUNT)]

    @pytest.mark.parametrize("pot_id", [MAX_POT_ID + 1, 2 ** 63])
    def test_oversized_pot_id_rejected(self, ledger, pot_id):
        with pytest.raises(ValidationError, match="at most"):
            ledger.add_coins(pot_id, [(GOLD, 1)])
        with pytest.raises(ValidationError, match="at most"):
            ledger.remove_coins(pot_id, 1)
        with pytest.raises(ValidationError, match="at most"):
            ledger.list_coins(pot_id)

    @pytest.mark.parametrize("pot_id", [0, -3, "1", None])
    def test_invalid_pot_id_rejected(self, ledger, pot_id):
        with pytest.raises(ValidationError, match="Pot id"):
            ledger.add_coins(pot_id, [(GOLD, 1)])

    def test_insert_failure_rolls_back_batch(self):
        storage = FailingInsertStorage(fail_on=3)
        ledger = PotLedger(storage, random.Random(1))

        with pytest.raises(StoreError, match="Simulated"):
            ledger.add_coins(1, [(GOLD, 1), (SILVER, 1), (BRONZE, 1)])

        assert ledger.list_coins(1) == []


class TestRemoveCoins:
    """Test shaking coins out of a pot"""

    def test_scenario_gold_and_bronze_removed_exactly(self, ledger):
        ledger.add_coins(1, [(GOLD, 2), (SILVER, 0), (BRONZE, 8)])

        removed = ledger.remove_coins(1, 10)

        assert as_pairs(removed) == [(GOLD, 2), (BRONZE, 8)]
        assert ledger.list_coins(1) == []

    def test_scenario_empty_pot(self, ledger):
        assert ledger.remove_coins(1, 5) == []

    def test_scenario_two_gold_rows_drained(self, ledger):
        ledger.add_coins(1, [(GOLD, 3), (GOLD, 4), (SILVER, 2)])

        # Ranges put every index below 7 on GOLD while gold remains
        removed = PotLedger(ledger.storage, ZeroRandom()).remove_coins(1, 7)

        assert as_pairs(removed) == [(GOLD, 7)]
        assert as_pairs(ledger.list_coins(1)) == [(SILVER, 2)]

    def test_partial_removal_updates_counts(self, ledger):
        ledger.add_coins(1, [(GOLD, 3), (GOLD, 4)])

        PotLedger(ledger.storage, ZeroRandom()).remove_coins(1, 2)

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 1), (GOLD, 4)]

    def test_request_larger_than_pot(self, ledger):
        ledger.add_coins(1, [(GOLD, 1), (SILVER, 2), (BRONZE, 3)])

        removed = ledger.remove_coins(1, 100)

        assert sum(coin.count for coin in removed) == 6
        assert ledger.list_coins(1) == []

    def test_removed_total_and_remaining_are_consistent(self, ledger):
        ledger.add_coins(1, [(GOLD, 10), (SILVER, 10), (BRONZE, 10), (SILVER, 5)])

        removed = ledger.remove_coins(1, 12)
        remaining = ledger.list_coins(1)

        assert sum(coin.count for coin in removed) == 12
        assert sum(coin.count for coin in remaining) == 23
        assert all(coin.count > 0 for coin in remaining)
        for denomination, before in ((GOLD, 10), (SILVER, 15), (BRONZE, 10)):
            taken = sum(c.count for c in removed if c.denomination == denomination)
            left = sum(c.count for c in remaining if c.denomination == denomination)
            assert taken + left == before

    def test_other_pots_untouched(self, ledger):
        ledger.add_coins(1, [(GOLD, 5)])
        ledger.add_coins(2, [(GOLD, 5)])

        ledger.remove_coins(1, 5)

        assert as_pairs(ledger.list_coins(2)) == [(GOLD, 5)]

    def test_zero_count_removal(self, ledger):
        ledger.add_coins(1, [(GOLD, 5)])

        assert ledger.remove_coins(1, 0) == []
        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 5)]

    def test_negative_count_rejected(self, ledger):
        with pytest.raises(ValidationError, match="Removal count"):
            ledger.remove_coins(1, -1)

    def test_same_seed_reproduces_removal(self):
        outcomes = []
        for _ in range(2):
            ledger = PotLedger(InMemoryStorage(), create_rng(99))
            ledger.add_coins(1, [(GOLD, 10), (SILVER, 20), (BRONZE, 30), (GOLD, 5)])
            removed = ledger.remove_coins(1, 25)
            outcomes.append((as_pairs(removed), as_pairs(ledger.list_coins(1))))

        assert outcomes[0] == outcomes[1]

    def test_store_failure_leaves_ledger_unchanged(self, failing_delete_storage):
        ledger = PotLedger(failing_delete_storage, ZeroRandom())
        ledger.add_coins(1, [(GOLD, 1), (GOLD, 5)])

        # Drains the first row (delete) and updates the second
        with pytest.raises(StoreError, match="Simulated"):
            ledger.remove_coins(1, 3)

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 1), (GOLD, 5)]

    def test_consistency_error_rolls_back(self, storage):
        class BrokenRandom:
            def randrange(self, k):
                return k + 10

        ledger = PotLedger(storage, BrokenRandom())
        ledger.add_coins(1, [(GOLD, 2), (SILVER, 0)])

        with pytest.raises(ConsistencyError):
            ledger.remove_coins(1, 1)

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 2), (SILVER, 0)]

    def test_empty_rows_deleted_even_when_untouched(self, ledger):
        ledger.add_coins(1, [(SILVER, 0), (GOLD, 3)])

        PotLedger(ledger.storage, ZeroRandom()).remove_coins(1, 1)

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 2)]

    def test_zero_count_removal_clears_empty_rows(self, ledger):
        ledger.add_coins(1, [(BRONZE, 0), (GOLD, 5)])

        assert ledger.remove_coins(1, 0) == []
        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 5)]

    @pytest.mark.parametrize("count", [MAX_COIN_COUNT + 1, 2 ** 63, 10 ** 30])
    def test_oversized_removal_count_rejected(self, ledger, count):
        ledger.add_coins(1, [(GOLD, 2)])

        with pytest.raises(ValidationError, match="at most"):
            ledger.remove_coins(1, count)

        assert as_pairs(ledger.list_coins(1)) == [(GOLD, 2)]

    def test_largest_removal_count_drains_pot(self, ledger):
        ledger.add_coins(1, [(GOLD, 2), (BRONZE, 1)])

        removed = ledger.remove_coins(1, MAX_COIN_COUNT)

        assert sum(coin.count for coin in removed) == 3
        assert ledger.list_coins(1) == []


class TestListCoins:
    """Test listing coins"""

    def test_empty_pot_lists_nothing(self, ledger):
        assert ledger.list_coins(5) == []

    def test_rows_listed_one_to_one(self, ledger):
        ledger.add_coins(3, [(BRONZE, 1), (BRONZE, 1), (GOLD, 9)])

        assert as_pairs(ledger.list_coins(3)) == [(BRONZE, 1), (BRONZE, 1), (GOLD, 9)]

    def test_invalid_pot_id(self, ledger):
        with pytest.raises(ValidationError):
            ledger.list_coins(0)


class TestLedgerLogging:
    """Operations emit structured log records"""

    def test_removal_logged(self, caplog):
        ledger = PotLedger(InMemoryStorage(), random.Random(0))
        ledger.add_coins(4, [(GOLD, 3)])

        with caplog.at_level(logging.INFO, logger="pyggpot.pots"):
            ledger.remove_coins(4, 2)

        records = [r for r in caplog.records if getattr(r, "action", None) == "coins_removed"]
        assert len(records) == 1
        assert records[0].pot_id == 4
        assert records[0].extra["requested"] == 2

    def test_rejected_batch_logged_as_warning(self, caplog):
        ledger = PotLedger(InMemoryStorage(), random.Random(0))

        with caplog.at_level(logging.WARNING, logger="pyggpot.pots"):
            with pytest.raises(ValidationError):
                ledger.add_coins(4, [(GOLD, -2)])

        assert any(getattr(r, "action", None) == "coins_add_rejected" for r in caplog.records)

    def test_store_failure_on_removal_logged_as_error(self, caplog):
        ledger = PotLedger(FailingDeleteStorage(), ZeroRandom())
        ledger.add_coins(4, [(GOLD, 1)])

        with caplog.at_level(logging.ERROR, logger="pyggpot.pots"):
            with pytest.raises(StoreError):
                ledger.remove_coins(4, 1)

        records = [r for r in caplog.records if getattr(r, "action", None) == "coins_remove_failed"]
        assert len(records) == 1
        assert records[0].levelno == logging.ERROR
        assert records[0].pot_id == 4
        assert "Simulated failure" in records[0].getMessage()

    def test_store_failure_on_add_logged_as_error(self, caplog):
        ledger = PotLedger(FailingInsertStorage(fail_on=1), ZeroRandom())

        with caplog.at_level(logging.ERROR, logger="pyggpot.pots"):
            with pytest.raises(StoreError):
                ledger.add_coins(4, [(GOLD, 1)])

        assert any(getattr(r, "action", None) == "coins_add_failed" for r in caplog.records)

    def test_removal_carries_bound_correlation_id(self, caplog):
        ledger = PotLedger(InMemoryStorage(), random.Random(0))
        ledger.add_coins(4, [(GOLD, 3)])

        with caplog.at_level(logging.INFO, logger="pyggpot.pots"):
            with correlation_context("req-42"):
                ledger.remove_coins(4, 1)
            ledger.remove_coins(4, 1)

        records = [r for r in caplog.records if getattr(r, "action", None) == "coins_removed"]
        assert [getattr(r, "correlation_id", None) for r in records] == ["req-42", None]


class TestCreateRng:
    """Test randomness source construction"""

    def test_seeded_generators_agree(self):
        first, second = create_rng(7), create_rng(7)

        assert [first.randrange(1000) for _ in range(5)] == [second.randrange(1000) for _ in range(5)]

    def test_unseeded_generator_works(self):
        assert 0 <= create_rng().randrange(10) < 10


if __name__ == "__main__":
    pytest.main([__file__])
