"""
Coin endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import PotSystem, get_pot_system
from .schemas import AddCoinsRequest, RemoveCoinsRequest, CoinsListResponse


router = APIRouter()


@router.post("/{pot_id}/coins", status_code=status.HTTP_201_CREATED,
             response_model=CoinsListResponse)
async def add_coins(
    pot_id: int,
    request: AddCoinsRequest,
    system: PotSystem = Depends(get_pot_system)
):
    """Add coins to a pot"""
    coins = system.pot_ledger.add_coins(
        pot_id, [coin.to_entry() for coin in request.coins]
    )
    return CoinsListResponse.from_coin_counts(coins)


@router.post("/{pot_id}/coins/remove", response_model=CoinsListResponse)
async def remove_coins(
    pot_id: int,
    request: RemoveCoinsRequest,
    system: PotSystem = Depends(get_pot_system)
):
    """Shake coins out of a pot"""
    coins = system.pot_ledger.remove_coins(pot_id, request.count)
    return CoinsListResponse.from_coin_counts(coins)


@router.get("/{pot_id}/coins", response_model=CoinsListResponse)
async def list_coins(
    pot_id: int,
    system: PotSystem = Depends(get_pot_system)
):
    """List the coin rows held by a pot"""
    coins = system.pot_ledger.list_coins(pot_id)
    return CoinsListResponse.from_coin_counts(coins)
