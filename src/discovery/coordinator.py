"""Discovery loop: new blocks -> contract creations -> static screen -> gate.

The last-scanned marker advances one block at a time, so a crash in the
middle of a range never re-scans blocks that were already handled.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

from loguru import logger

from src.db.persistence import utcnow
from src.discovery.scanner import ChainScanner
from src.discovery.validator import ContractValidator
from src.queues.payloads import ValidationRequest
from src.utils.aio import cancel_task, sleep_or_stop
from src.utils.logger import short

Forwarder = Callable[[ValidationRequest], Awaitable[object]]


@dataclass
class DiscoveryStats:
    blocks_scanned: int = 0
    contracts_discovered: int = 0
    valid_contracts: int = 0
    invalid_contracts: int = 0
    last_scanned_block: int | None = None


class DiscoveryCoordinator:
    def __init__(
        self,
        *,
        scanner: ChainScanner,
        validator: ContractValidator,
        forward: Forwarder,
        scan_interval_sec: float = 15.0,
        max_blocks_per_tick: int = 100,
    ) -> None:
        self._scanner = scanner
        self._validator = validator
        self._forward = forward
        self._scan_interval = scan_interval_sec
        self._max_blocks = max_blocks_per_tick

        self.stats = DiscoveryStats()
        self._unverified: set[str] = set()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def unverified_addresses(self) -> list[str]:
        return sorted(self._unverified)

    def get_stats(self) -> dict:
        data = asdict(self.stats)
        data["unverified_contracts"] = len(self._unverified)
        data["is_running"] = self.is_running
        return data

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self, *, from_block: int | None = None) -> bool:
        """Start the scan loop. Returns False if it is already running."""
        if self.is_running:
            return False
        if from_block is not None:
            self.stats.last_scanned_block = from_block - 1
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="discovery")
        logger.info("[DISCOVERY] Started")
        return True

    async def stop(self) -> bool:
        """Stop scheduling further blocks. Returns False if it was not running."""
        if not self.is_running:
            return False
        self._stop.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=self._scan_interval)
        except TimeoutError:
            await cancel_task(self._task)
        self._task = None
        logger.info("[DISCOVERY] Stopped")
        return True

    async def _run(self) -> None:
        while not self._stop.is_set():
            delay = self._scan_interval
            try:
                await self.scan_once()
            except Exception as e:
                logger.error(f"[DISCOVERY] Tick failed: {e}")
                delay = self._scan_interval * 2
            if await sleep_or_stop(self._stop, delay):
                break

    # ── Scanning ──────────────────────────────────────────────────────

    async def scan_once(self) -> int:
        """Scan blocks after the marker, at most ``max_blocks_per_tick`` of them.

        A backlog larger than the cap is worked off over later ticks; no block
        is skipped. Returns blocks scanned this tick.
        """
        height = await self._scanner.get_current_height()
        last = self.stats.last_scanned_block
        if last is None:
            # First tick starts at the head; history is not back-filled
            last = height - 1
            self.stats.last_scanned_block = last
        if height <= last:
            return 0

        start = last + 1
        end = min(height, last + self._max_blocks)
        if end < height:
            logger.info(f"[DISCOVERY] Behind by {height - last} blocks, scanning {start}..{end} this tick")

        scanned = 0
        for block in range(start, end + 1):
            if self._stop.is_set() and self._task is not None:
                break
            await self._process_block(block)
            self.stats.last_scanned_block = block
            self.stats.blocks_scanned += 1
            scanned += 1
        return scanned

    async def _process_block(self, block: int) -> None:
        addresses = await self._scanner.get_contract_creations(block)
        for address in addresses:
            try:
                await self._handle_contract(address)
            except Exception as e:
                logger.error(f"[DISCOVERY] Block {block} contract {short(address)} failed: {e}")

    async def _handle_contract(self, address: str) -> None:
        self.stats.contracts_discovered += 1
        result = await self._validator.validate(address)

        if not result.is_verified:
            self._unverified.add(address)
            self.stats.invalid_contracts += 1
            return
        if not result.is_valid:
            self.stats.invalid_contracts += 1
            return

        self.stats.valid_contracts += 1
        await self._forward(
            ValidationRequest(
                address=address,
                creator_address=result.creator_address,
                discovered_at=utcnow(),
            )
        )

    async def retry_unverified(self) -> int:
        """Re-screen contracts that were unverified when first seen.

        Addresses that are now verified leave the list whatever the verdict.
        Returns how many were forwarded to the gate.
        """
        forwarded = 0
        for address in list(self._unverified):
            try:
                result = await self._validator.validate(address)
                if not result.is_verified:
                    continue
                self._unverified.discard(address)
                if not result.is_valid:
                    continue
                self.stats.valid_contracts += 1
                self.stats.invalid_contracts = max(0, self.stats.invalid_contracts - 1)
                await self._forward(
                    ValidationRequest(
                        address=address,
                        creator_address=result.creator_address,
                        discovered_at=utcnow(),
                    )
                )
                forwarded += 1
            except Exception as e:
                logger.error(f"[DISCOVERY] Re-verification of {short(address)} failed: {e}")
        logger.info(
            f"[DISCOVERY] Re-verification forwarded {forwarded}, "
            f"{len(self._unverified)} still unverified"
        )
        return forwarded
