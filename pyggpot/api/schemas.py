"""
Pydantic schemas for API requests and responses
"""

from typing import List
from pydantic import BaseModel, Field

from ..coins import CoinCount


class CoinModel(BaseModel):
    kind: str = Field(..., description="Denomination (gold, silver, bronze)")
    count: int = Field(..., description="Number of coins")

    def to_entry(self) -> tuple:
        return (self.kind, self.count)

    @classmethod
    def from_coin_count(cls, coin: CoinCount) -> 'CoinModel':
        return cls(kind=coin.denomination.value, count=coin.count)


class AddCoinsRequest(BaseModel):
    coins: List[CoinModel]


class RemoveCoinsRequest(BaseModel):
    count: int = Field(..., description="Number of coins to shake out of the pot")


class CoinsListResponse(BaseModel):
    coins: List[CoinModel]

    @classmethod
    def from_coin_counts(cls, coins: List[CoinCount]) -> 'CoinsListResponse':
        return cls(coins=[CoinModel.from_coin_count(coin) for coin in coins])
