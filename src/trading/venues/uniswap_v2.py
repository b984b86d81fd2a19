"""Uniswap V2-style constant-product venue (factory getPair + router swaps)."""

from __future__ import annotations

import time

from eth_utils import to_checksum_address
from loguru import logger

from src.chain.abis import (
    ERC20_ABI,
    UNISWAP_V2_FACTORY_ABI,
    UNISWAP_V2_PAIR_ABI,
    UNISWAP_V2_ROUTER_ABI,
    ZERO_ADDRESS,
)
from src.chain.erc20 import Erc20Metadata
from src.chain.provider import ChainProvider
from src.chain.wallet import EvmWallet
from src.errors import TradeExecutionError
from src.models.enums import Venue
from src.trading.venues.base import PoolLiquidity, SwapFill, VenueAdapter
from src.utils.logger import short

SWAP_DEADLINE_SEC = 300
# Approve a little more than needed so fee-on-transfer rounding never starves the swap
APPROVE_HEADROOM_PCT = 105


class UniswapV2Venue(VenueAdapter):
    venue = Venue.UNISWAP_V2

    def __init__(
        self,
        provider: ChainProvider,
        *,
        factory_address: str,
        router_address: str,
        weth_address: str,
        wallet: EvmWallet | None = None,
        slippage_bps: int = 500,
    ) -> None:
        self._provider = provider
        self._wallet = wallet
        self._weth = to_checksum_address(weth_address)
        self._factory = provider.contract(factory_address, UNISWAP_V2_FACTORY_ABI)
        self._router = provider.contract(router_address, UNISWAP_V2_ROUTER_ABI)
        self._router_address = to_checksum_address(router_address)
        self._slippage_bps = slippage_bps

    def _require_wallet(self) -> EvmWallet:
        if self._wallet is None:
            raise TradeExecutionError("No wallet configured for trading")
        return self._wallet

    def _min_out(self, expected: int) -> int:
        return expected * (10_000 - self._slippage_bps) // 10_000

    @staticmethod
    def _deadline() -> int:
        return int(time.time()) + SWAP_DEADLINE_SEC

    async def get_pair_address(self, token_address: str) -> str | None:
        pair = await self._factory.functions.getPair(
            to_checksum_address(token_address), self._weth
        ).call()
        if not pair or pair == ZERO_ADDRESS:
            return None
        return to_checksum_address(pair)

    async def get_pool_liquidity(self, token_address: str) -> PoolLiquidity | None:
        pair_address = await self.get_pair_address(token_address)
        if pair_address is None:
            return None
        pair = self._provider.contract(pair_address, UNISWAP_V2_PAIR_ABI)
        reserve0, reserve1, _ts = await pair.functions.getReserves().call()
        token0 = await pair.functions.token0().call()
        base_reserve = reserve0 if to_checksum_address(token0) == self._weth else reserve1
        return PoolLiquidity(venue=self.venue, pool_address=pair_address, base_reserve_wei=base_reserve)

    async def quote(self, path: list[str], amount_in: int) -> int:
        amounts = await self._router.functions.getAmountsOut(
            amount_in, [to_checksum_address(p) for p in path]
        ).call()
        return amounts[-1]

    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        wallet = self._require_wallet()
        path = [self._weth, token.address]
        expected = await self.quote(path, eth_amount_wei)
        before = await wallet.get_token_balance(token.address)

        tx = self._router.functions.swapExactETHForTokensSupportingFeeOnTransferTokens(
            self._min_out(expected), path, wallet.address, self._deadline()
        )
        outcome = await wallet.send(tx, value=eth_amount_wei)
        after = await wallet.get_token_balance(token.address)

        logger.info(f"[V2] Bought {short(token.address)}: {after - before} raw for {eth_amount_wei} wei")
        return SwapFill(
            tx_hash=outcome.tx_hash,
            token_amount_raw=after - before,
            eth_amount_wei=eth_amount_wei,
            gas_cost_wei=outcome.gas_cost_wei,
        )

    async def _ensure_allowance(self, token: Erc20Metadata, raw_amount: int) -> int:
        """Approve the router if needed. Returns gas spent on approval (wei)."""
        wallet = self._require_wallet()
        allowance = await wallet.get_allowance(token.address, self._router_address)
        if allowance >= raw_amount:
            return 0
        contract = self._provider.contract(token.address, ERC20_ABI)
        tx = contract.functions.approve(self._router_address, raw_amount * APPROVE_HEADROOM_PCT // 100)
        outcome = await wallet.send(tx)
        logger.debug(f"[V2] Approved router for {short(token.address)}")
        return outcome.gas_cost_wei

    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        wallet = self._require_wallet()
        balance = await wallet.get_token_balance(token.address)
        if balance < raw_amount:
            raise TradeExecutionError(
                f"insufficient funds: token balance {balance} < {raw_amount}"
            )
        approve_gas = await self._ensure_allowance(token, raw_amount)

        path = [token.address, self._weth]
        expected = await self.quote(path, raw_amount)
        eth_before = await wallet.get_eth_balance_wei()
        tx = self._router.functions.swapExactTokensForETHSupportingFeeOnTransferTokens(
            raw_amount, self._min_out(expected), path, wallet.address, self._deadline()
        )
        outcome = await wallet.send(tx)
        eth_after = await wallet.get_eth_balance_wei()
        received = eth_after - eth_before + outcome.gas_cost_wei

        logger.info(f"[V2] Sold {raw_amount} raw {short(token.address)} for {received} wei")
        return SwapFill(
            tx_hash=outcome.tx_hash,
            token_amount_raw=raw_amount,
            eth_amount_wei=max(received, 0),
            gas_cost_wei=outcome.gas_cost_wei + approve_gas,
        )
