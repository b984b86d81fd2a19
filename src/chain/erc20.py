from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from src.chain.abis import ERC20_ABI
from src.chain.provider import ChainProvider
from src.chain.units import normalize_address
from src.errors import TechnicalError


@dataclass(frozen=True)
class Erc20Metadata:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: int


async def fetch_erc20_metadata(provider: ChainProvider, address: str) -> Erc20Metadata:
    """Read name/symbol/decimals/totalSupply.

    Raises TechnicalError if name, symbol or totalSupply cannot be read.
    A missing decimals() falls back to 18.
    """
    address = normalize_address(address)
    contract = provider.contract(address, ERC20_ABI)
    name, symbol, decimals, supply = await asyncio.gather(
        contract.functions.name().call(),
        contract.functions.symbol().call(),
        contract.functions.decimals().call(),
        contract.functions.totalSupply().call(),
        return_exceptions=True,
    )
    if isinstance(name, BaseException) or isinstance(symbol, BaseException):
        raise TechnicalError(f"ERC-20 {address}: name/symbol unreadable")
    if isinstance(supply, BaseException):
        raise TechnicalError(f"ERC-20 {address}: totalSupply unreadable")
    if isinstance(decimals, BaseException):
        logger.debug(f"[CHAIN] {address}: decimals() failed, assuming 18")
        decimals = 18
    return Erc20Metadata(
        address=address,
        name=str(name),
        symbol=str(symbol),
        decimals=int(decimals),
        total_supply=int(supply),
    )
