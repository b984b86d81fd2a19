"""EVM wallet: key loading, balance queries, signing and sending.

The private key is loaded ONCE at startup and never logged or exposed.
Only the address is shown in logs and __repr__.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from eth_account import Account
from eth_utils import to_checksum_address
from loguru import logger
from web3.exceptions import TimeExhausted

from src.chain.abis import ERC20_ABI
from src.chain.provider import ChainProvider
from src.chain.units import format_units
from src.errors import TechnicalError

RECEIPT_TIMEOUT_SEC = 120


class TransactionRevertedError(TechnicalError):
    pass


class TransactionPendingError(TechnicalError):
    """Sent, but no receipt within the timeout. The tx may still be mined."""

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(f"no receipt for {tx_hash} after {timeout:.0f}s")
        self.tx_hash = tx_hash


@dataclass
class TxOutcome:
    tx_hash: str
    block_number: int
    gas_used: int
    effective_gas_price: int

    @property
    def gas_cost_wei(self) -> int:
        return self.gas_used * self.effective_gas_price


class EvmWallet:
    """Signs and sends transactions for the trading account."""

    def __init__(self, private_key: str, provider: ChainProvider, *, chain_id: int) -> None:
        if not private_key:
            raise ValueError("Wallet private key is empty")
        self._account = Account.from_key(private_key)
        self._provider = provider
        self._chain_id = chain_id
        self._nonce_lock = asyncio.Lock()
        logger.info(f"[WALLET] Loaded wallet: {self.address}")

    def __repr__(self) -> str:
        return f"EvmWallet(address={self.address})"

    @property
    def address(self) -> str:
        return self._account.address

    async def get_eth_balance_wei(self) -> int:
        return await self._provider.get_balance(self.address)

    async def get_eth_balance(self) -> Decimal:
        """ETH balance (not wei). Returns 0 on error."""
        try:
            return format_units(await self.get_eth_balance_wei(), 18)
        except Exception as e:
            logger.warning(f"[WALLET] getBalance failed: {e}")
            return Decimal(0)

    async def get_token_balance(self, token_address: str) -> int:
        """Raw ERC-20 balance held by the wallet."""
        token = self._provider.contract(token_address, ERC20_ABI)
        return await token.functions.balanceOf(self.address).call()

    async def get_allowance(self, token_address: str, spender: str) -> int:
        token = self._provider.contract(token_address, ERC20_ABI)
        return await token.functions.allowance(self.address, to_checksum_address(spender)).call()

    async def send(self, tx_func: Any, *, value: int = 0) -> TxOutcome:
        """Build, sign and send a contract call, then wait for its receipt.

        Raises TransactionRevertedError if the receipt status is not 1 and
        TransactionPendingError if no receipt arrives in time.
        """
        w3 = self._provider.w3
        async with self._nonce_lock:
            nonce = await w3.eth.get_transaction_count(self.address, "pending")
            tx = await tx_func.build_transaction(
                {
                    "from": self.address,
                    "value": value,
                    "nonce": nonce,
                    "chainId": self._chain_id,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_hex = tx_hash.to_0x_hex()
        try:
            receipt = await w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT_SEC)
        except TimeExhausted as e:
            logger.error(f"[WALLET] {tx_hex} still pending after {RECEIPT_TIMEOUT_SEC}s")
            raise TransactionPendingError(tx_hex, RECEIPT_TIMEOUT_SEC) from e
        if receipt["status"] != 1:
            raise TransactionRevertedError(f"transaction reverted: {tx_hex}")
        logger.debug(f"[WALLET] Confirmed {tx_hex} in block {receipt['blockNumber']}")
        return TxOutcome(
            tx_hash=tx_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            effective_gas_price=receipt.get("effectiveGasPrice", 0),
        )
