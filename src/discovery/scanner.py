"""Block scanner: finds contracts created in a block via mint-style transfers.

A token deployment usually mints its supply in the constructor, which shows
up as a Transfer from the zero address inside the creation transaction.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from src.chain.abis import TRANSFER_TOPIC, ZERO_TOPIC
from src.chain.provider import ChainProvider

DEAD_ADDRESSES = frozenset(
    {
        "0x0000000000000000000000000000000000000000",
        "0x0000000000000000000000000000000000000001",
        "0x000000000000000000000000000000000000dead",
    }
)


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value).lower()


def _topic_to_address(topic: Any) -> str:
    return "0x" + _hex(topic)[-40:]


def _transfer_value(data: Any) -> int:
    raw = _hex(data)
    if raw in ("0x", ""):
        return 0
    return int(raw, 16)


def filter_mint_transfers(logs: Iterable[Any]) -> list[str]:
    """Transaction hashes worth inspecting, from zero-address Transfer logs.

    Applied in order: one log per emitting contract, value > 0, recipient
    not a burn address, one log per transaction.
    """
    seen_contracts: set[str] = set()
    by_contract = []
    for log in logs:
        contract = _hex(log["address"])
        if contract in seen_contracts:
            continue
        seen_contracts.add(contract)
        by_contract.append(log)

    seen_txs: set[str] = set()
    tx_hashes: list[str] = []
    for log in by_contract:
        topics = log["topics"]
        if len(topics) < 3:
            continue
        if _transfer_value(log["data"]) <= 0:
            continue
        if _topic_to_address(topics[2]) in DEAD_ADDRESSES:
            continue
        tx_hash = _hex(log["transactionHash"])
        if tx_hash in seen_txs:
            continue
        seen_txs.add(tx_hash)
        tx_hashes.append(tx_hash)
    return tx_hashes


class ChainScanner:
    def __init__(self, provider: ChainProvider) -> None:
        self._provider = provider

    async def get_current_height(self) -> int:
        return await self._provider.current_height()

    async def get_contract_creations(self, height: int) -> list[str]:
        """Addresses of contracts created in ``height``. Empty list on any failure."""
        try:
            logs = await self._provider.get_logs(height, height, [TRANSFER_TOPIC, ZERO_TOPIC])
            tx_hashes = filter_mint_transfers(logs)

            created: list[str] = []
            for tx_hash in tx_hashes:
                receipt = await self._provider.get_transaction_receipt(tx_hash)
                if not receipt:
                    continue
                contract_address = receipt.get("contractAddress")
                if not contract_address:
                    continue
                address = to_checksum_address(contract_address)
                if address not in created:
                    created.append(address)

            if created:
                logger.debug(f"[SCANNER] Block {height}: {len(created)} new contract(s)")
            return created

        except Exception as e:
            logger.warning(f"[SCANNER] Block {height} scan failed: {e}")
            return []
