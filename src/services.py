"""Wires the pipeline together from settings.

One Services instance per process: the entry point starts and stops it,
the operator API reads it from ``app.state``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings, settings
from src.chain.erc20 import fetch_erc20_metadata
from src.chain.provider import ChainProvider
from src.chain.units import to_plain
from src.chain.wallet import EvmWallet
from src.db.database import async_session_factory
from src.db.persistence import count_tokens_by_status
from src.discovery.coordinator import DiscoveryCoordinator
from src.discovery.scanner import ChainScanner
from src.discovery.validator import ContractValidator
from src.models.enums import Venue
from src.monitor.coordinator import MonitorCoordinator
from src.notify.webhooks import WebhookNotifier
from src.parsers.etherscan.client import EtherscanClient
from src.queues.retry_queue import QueueRegistry
from src.security.gate import SecurityGate
from src.security.honeypot import HoneypotProbe
from src.security.liquidity import LiquidityOracle
from src.trading.executor import TradeExecutor
from src.trading.ledger import PositionLedger
from src.trading.price import PriceOracle
from src.trading.venues import UniswapV2Venue, UniswapV3Venue, UnsupportedVenue, VenueAdapter


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    provider: ChainProvider
    explorer: EtherscanClient
    wallet: EvmWallet | None
    venues: dict[Venue, VenueAdapter]
    prices: PriceOracle
    notifier: WebhookNotifier
    queues: QueueRegistry
    liquidity: LiquidityOracle
    honeypot: HoneypotProbe
    executor: TradeExecutor
    gate: SecurityGate
    monitor: MonitorCoordinator
    discovery: DiscoveryCoordinator

    def start(self, *, discovery: bool = True) -> None:
        self.gate.start()
        self.monitor.start()
        if discovery:
            self.discovery.start()

    async def stop(self) -> None:
        await self.discovery.stop()
        await self.gate.stop()
        await self.monitor.stop()
        self.queues.stop_all()
        await self.notifier.close()
        await self.explorer.close()
        await self.provider.close()
        logger.info("[SERVICES] Stopped")

    async def wallet_info(self) -> dict:
        if self.wallet is None:
            return {"configured": False, "address": None, "eth_balance": None}
        balance = await self.wallet.get_eth_balance()
        return {"configured": True, "address": self.wallet.address, "eth_balance": to_plain(balance)}

    async def get_stats(self) -> dict:
        async with self.session_factory() as session:
            tokens = await count_tokens_by_status(session)
        return {
            "discovery": self.discovery.get_stats(),
            "security": self.gate.get_stats(),
            "monitor": self.monitor.get_stats(),
            "queues": self.queues.stats(),
            "tokens": tokens,
            "webhooks": {
                "subscriptions": len(self.notifier.list_subscriptions()),
                "delivered": self.notifier.delivered,
                "failed": self.notifier.failed,
            },
        }


def build_venues(cfg: Settings, provider: ChainProvider, wallet: EvmWallet | None) -> dict[Venue, VenueAdapter]:
    venues: dict[Venue, VenueAdapter] = {
        Venue.UNISWAP_V2: UniswapV2Venue(
            provider,
            factory_address=cfg.uniswap_v2_factory,
            router_address=cfg.uniswap_v2_router,
            weth_address=cfg.weth_address,
            wallet=wallet,
            slippage_bps=cfg.slippage_bps,
        ),
        Venue.UNISWAP_V3: UniswapV3Venue(
            provider,
            factory_address=cfg.uniswap_v3_factory,
            quoter_address=cfg.uniswap_v3_quoter,
            weth_address=cfg.weth_address,
            fee_tiers=cfg.v3_fee_tiers,
            pool_cache_ttl_sec=cfg.pool_cache_ttl_sec,
        ),
    }
    for venue in (Venue.UNISWAP_V4, Venue.AERODROME, Venue.BALANCER):
        venues[venue] = UnsupportedVenue(venue)
    return venues


def build_services(
    cfg: Settings = settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> Services:
    provider = ChainProvider(cfg.rpc_url)
    wallet = EvmWallet(cfg.wallet_private_key, provider, chain_id=cfg.chain_id) if cfg.wallet_private_key else None
    if wallet is None:
        logger.warning("[SERVICES] No wallet key configured, trading and honeypot probes are disabled")
    else:
        logger.info(f"[SERVICES] Trading wallet {wallet.address}")

    explorer = EtherscanClient(
        cfg.explorer_api_url,
        cfg.explorer_api_key,
        max_rps=cfg.explorer_max_rps,
        chain_id=cfg.chain_id,
    )
    venues = build_venues(cfg, provider, wallet)
    prices = PriceOracle(
        venues,
        weth_address=cfg.weth_address,
        usdc_address=cfg.usdc_address,
        usdc_decimals=cfg.usdc_decimals,
        cache_sec=cfg.eth_price_cache_sec,
    )

    notifier = WebhookNotifier(timeout_sec=cfg.webhook_timeout_sec)
    for url in cfg.webhook_urls:
        notifier.subscribe(url)

    queues = QueueRegistry(max_retries=cfg.queue_max_retries)
    liquidity = LiquidityOracle(
        venues,
        min_liquidity_eth=cfg.min_liquidity_eth,
        rugpull_threshold_pct=cfg.rugpull_threshold_pct,
    )
    honeypot = HoneypotProbe(
        venues=venues,
        wallet=wallet,
        price_oracle=prices,
        test_buy_usd=cfg.honeypot_test_buy_usd,
        settle_delay_sec=cfg.honeypot_settle_delay_sec,
    )
    executor = TradeExecutor(
        venues=venues,
        wallet=wallet,
        price_oracle=prices,
        notifier=notifier,
        ledger=PositionLedger(),
        max_retries=cfg.trade_max_retries,
        retry_delay_sec=cfg.trade_retry_delay_sec,
    )
    monitor = MonitorCoordinator(
        session_factory=session_factory,
        liquidity=liquidity,
        honeypot=honeypot,
        prices=prices,
        executor=executor,
        notifier=notifier,
        queue=queues.get(QueueRegistry.MONITORING),
        positions_interval_sec=cfg.monitor_positions_interval_sec,
        all_interval_sec=cfg.monitor_all_interval_sec,
        batch_size=cfg.monitor_batch_size,
        double_exit_multiplier=cfg.double_exit_multiplier,
        early_exit_minutes=cfg.early_exit_minutes,
        default_buy_usd=cfg.default_buy_usd,
    )
    gate = SecurityGate(
        session_factory=session_factory,
        fetch_metadata=partial(fetch_erc20_metadata, provider),
        liquidity=liquidity,
        honeypot=honeypot if cfg.gate_honeypot_probe else None,
        notifier=notifier,
        queue=queues.get(QueueRegistry.VALIDATION),
        on_promoted=monitor.enqueue,
        ttl_sec=cfg.active_token_ttl_sec,
        sweep_interval_sec=cfg.security_sweep_interval_sec,
        grace_period_sec=cfg.liquidity_grace_period_sec,
        batch_size=cfg.validation_batch_size,
    )
    discovery = DiscoveryCoordinator(
        scanner=ChainScanner(provider),
        validator=ContractValidator(provider, explorer),
        forward=gate.submit,
        scan_interval_sec=cfg.discovery_scan_interval_sec,
        max_blocks_per_tick=cfg.discovery_max_blocks_per_tick,
    )

    return Services(
        settings=cfg,
        session_factory=session_factory,
        provider=provider,
        explorer=explorer,
        wallet=wallet,
        venues=venues,
        prices=prices,
        notifier=notifier,
        queues=queues,
        liquidity=liquidity,
        honeypot=honeypot,
        executor=executor,
        gate=gate,
        monitor=monitor,
        discovery=discovery,
    )
