"""
Shared system dependencies
"""

from typing import Optional

from ..config import get_config
from ..logging_config import get_logger
from ..pots import PotLedger, create_rng
from ..storage import StorageInterface, create_storage


class PotSystem:
    """Pot service with storage, randomness and ledger initialized"""

    def __init__(self, storage: StorageInterface, seed: Optional[int] = None):
        self.storage = storage
        # One generator for the life of the process
        self.rng = create_rng(seed)
        self.pot_ledger = PotLedger(self.storage, self.rng)

    @classmethod
    def from_config(cls) -> 'PotSystem':
        config = get_config()
        get_logger("pyggpot.api").info(f"Opening storage at {config.database_url}")
        return cls(create_storage(config), seed=config.random_seed)

    def close(self) -> None:
        self.storage.close()


# Global pot system instance, created on first use
pot_system: Optional[PotSystem] = None


def get_pot_system() -> PotSystem:
    global pot_system
    if pot_system is None:
        pot_system = PotSystem.from_config()
    return pot_system
