"""Tests for the discovery loop: block marker, forwarding, unverified retry."""

import asyncio

import pytest

from src.discovery.coordinator import DiscoveryCoordinator
from src.discovery.validator import ValidationResult


class FakeScanner:
    def __init__(self, height: int, creations: dict[int, list[str]] | None = None) -> None:
        self.height = height
        self.creations = creations or {}
        self.scanned: list[int] = []

    async def get_current_height(self) -> int:
        return self.height

    async def get_contract_creations(self, height: int) -> list[str]:
        self.scanned.append(height)
        return self.creations.get(height, [])


class FakeValidator:
    def __init__(self, results: dict[str, ValidationResult]) -> None:
        self.results = results
        self.calls: list[str] = []

    async def validate(self, address: str) -> ValidationResult:
        self.calls.append(address)
        result = self.results[address]
        if isinstance(result, Exception):
            raise result
        return result


VALID = ValidationResult(is_verified=True, is_valid=True, creator_address="0xcreator")
INVALID = ValidationResult(is_verified=True, is_valid=False, reason="risky_functions")
UNVERIFIED = ValidationResult(is_verified=False, is_valid=False, reason="unverified")


def _coordinator(scanner, validator, forwarded: list, **kw) -> DiscoveryCoordinator:
    async def forward(request) -> None:
        forwarded.append(request)

    return DiscoveryCoordinator(scanner=scanner, validator=validator, forward=forward, scan_interval_sec=0.01, **kw)


class TestScanOnce:
    @pytest.mark.asyncio
    async def test_first_tick_starts_at_head(self) -> None:
        scanner = FakeScanner(100)
        coord = _coordinator(scanner, FakeValidator({}), [])
        assert await coord.scan_once() == 1
        assert scanner.scanned == [100]
        assert coord.stats.last_scanned_block == 100

    @pytest.mark.asyncio
    async def test_scans_every_new_block_in_order(self) -> None:
        scanner = FakeScanner(100)
        coord = _coordinator(scanner, FakeValidator({}), [])
        await coord.scan_once()
        scanner.height = 103
        assert await coord.scan_once() == 3
        assert scanner.scanned == [100, 101, 102, 103]
        assert coord.stats.blocks_scanned == 4

    @pytest.mark.asyncio
    async def test_no_new_block(self) -> None:
        scanner = FakeScanner(100)
        coord = _coordinator(scanner, FakeValidator({}), [])
        await coord.scan_once()
        assert await coord.scan_once() == 0

    @pytest.mark.asyncio
    async def test_caps_blocks_per_tick_without_gaps(self) -> None:
        scanner = FakeScanner(100)
        coord = _coordinator(scanner, FakeValidator({}), [], max_blocks_per_tick=100)
        await coord.scan_once()
        scanner.height = 250

        assert await coord.scan_once() == 100
        assert coord.stats.last_scanned_block == 200
        assert await coord.scan_once() == 50
        assert scanner.scanned[1:] == list(range(101, 251))
        assert await coord.scan_once() == 0

    @pytest.mark.asyncio
    async def test_forwards_only_valid_contracts(self) -> None:
        scanner = FakeScanner(10, {10: ["0xA", "0xB", "0xC"]})
        validator = FakeValidator({"0xA": VALID, "0xB": INVALID, "0xC": UNVERIFIED})
        forwarded: list = []
        coord = _coordinator(scanner, validator, forwarded)

        await coord.scan_once()

        assert [r.address for r in forwarded] == ["0xA"]
        assert forwarded[0].creator_address == "0xcreator"
        assert coord.unverified_addresses == ["0xC"]
        stats = coord.get_stats()
        assert stats["contracts_discovered"] == 3
        assert stats["valid_contracts"] == 1
        assert stats["invalid_contracts"] == 2
        assert stats["unverified_contracts"] == 1

    @pytest.mark.asyncio
    async def test_one_bad_contract_does_not_stop_the_block(self) -> None:
        scanner = FakeScanner(10, {10: ["0xA", "0xB"]})
        validator = FakeValidator({"0xA": RuntimeError("boom"), "0xB": VALID})
        forwarded: list = []
        coord = _coordinator(scanner, validator, forwarded)
        await coord.scan_once()
        assert [r.address for r in forwarded] == ["0xB"]


class TestRetryUnverified:
    @pytest.mark.asyncio
    async def test_now_verified_contracts_leave_the_list(self) -> None:
        scanner = FakeScanner(10, {10: ["0xA", "0xB", "0xC"]})
        validator = FakeValidator({"0xA": UNVERIFIED, "0xB": UNVERIFIED, "0xC": UNVERIFIED})
        forwarded: list = []
        coord = _coordinator(scanner, validator, forwarded)
        await coord.scan_once()
        assert len(coord.unverified_addresses) == 3

        validator.results.update({"0xA": VALID, "0xB": INVALID})
        assert await coord.retry_unverified() == 1
        assert [r.address for r in forwarded] == ["0xA"]
        assert coord.unverified_addresses == ["0xC"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop(self) -> None:
        coord = _coordinator(FakeScanner(1), FakeValidator({}), [])
        assert coord.start() is True
        assert coord.start() is False
        assert coord.is_running
        await asyncio.sleep(0.02)
        assert await coord.stop() is True
        assert not coord.is_running
        assert await coord.stop() is False

    @pytest.mark.asyncio
    async def test_start_from_block(self) -> None:
        scanner = FakeScanner(12)
        coord = _coordinator(scanner, FakeValidator({}), [])
        coord.start(from_block=10)
        await asyncio.sleep(0.02)
        await coord.stop()
        assert scanner.scanned[:3] == [10, 11, 12]
