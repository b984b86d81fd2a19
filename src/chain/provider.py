"""Thin async wrapper over web3's AsyncWeb3 for the calls the pipeline needs."""

from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound


class ChainProvider:
    def __init__(self, rpc_url: str, *, timeout: float = 30.0, w3: AsyncWeb3 | None = None) -> None:
        if w3 is None and not rpc_url:
            raise ValueError("RPC URL is empty")
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )

    async def current_height(self) -> int:
        return await self.w3.eth.block_number

    async def get_logs(self, from_block: int, to_block: int, topics: list[Any]) -> list[Any]:
        return await self.w3.eth.get_logs(
            {"fromBlock": from_block, "toBlock": to_block, "topics": topics}
        )

    async def get_transaction_receipt(self, tx_hash: str | bytes) -> Any | None:
        """Receipt for a mined transaction, None if the node does not know it."""
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def get_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(to_checksum_address(address))

    def contract(self, address: str, abi: list[dict]) -> Any:
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    async def close(self) -> None:
        try:
            await self.w3.provider.disconnect()
        except Exception as e:
            logger.debug(f"[CHAIN] provider disconnect: {e}")
