from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./token_sentinel.db"

    # Chain (Base mainnet by default)
    rpc_url: str = "https://mainnet.base.org"
    chain_id: int = 8453
    wallet_private_key: str = ""  # Never logged

    # Block explorer (Etherscan-compatible API)
    explorer_api_url: str = "https://api.basescan.org/api"
    explorer_api_key: str = ""
    explorer_max_rps: float = 4.0  # Free tier allows 5 RPS

    # Base asset and fiat quote token
    weth_address: str = "0x4200000000000000000000000000000000000006"
    usdc_address: str = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    usdc_decimals: int = 6

    # Venues
    uniswap_v2_factory: str = "0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6"
    uniswap_v2_router: str = "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24"
    uniswap_v3_factory: str = "0x33128a8fC17869897dcE68Ed026d694621f6FDfD"
    uniswap_v3_quoter: str = "0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a"
    v3_fee_tiers: list[int] = [100, 500, 3000, 10000]
    pool_cache_ttl_sec: int = 3600  # Pool addresses never change once created

    # Discovery
    discovery_scan_interval_sec: int = 15
    discovery_max_blocks_per_tick: int = 100

    # Security gate
    active_token_ttl_sec: int = 600
    security_sweep_interval_sec: int = 60
    liquidity_grace_period_sec: int = 90
    validation_batch_size: int = 5
    min_liquidity_eth: float = 1.0
    rugpull_threshold_pct: float = 20.0  # % of min_liquidity_eth
    gate_honeypot_probe: bool = True
    honeypot_test_buy_usd: float = 1.0
    honeypot_settle_delay_sec: float = 3.0

    # Monitoring / exit strategies
    monitor_positions_interval_sec: int = 30
    monitor_all_interval_sec: int = 300
    monitor_batch_size: int = 5
    double_exit_multiplier: float = 2.0
    early_exit_minutes: int = 30

    # Trading
    default_buy_usd: float = 10.0
    slippage_bps: int = 500
    trade_max_retries: int = 3
    trade_retry_delay_sec: float = 1.0
    eth_price_cache_sec: int = 60

    # Queues
    queue_max_retries: int = 3

    # Webhooks
    webhook_urls: list[str] = []
    webhook_timeout_sec: float = 5.0

    # Operator API
    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("rugpull_threshold_pct")
    @classmethod
    def _check_rugpull_pct(cls, v: float) -> float:
        if not 0 < v < 100:
            raise ValueError("rugpull_threshold_pct must be between 0 and 100 (exclusive)")
        return v


settings = Settings()
