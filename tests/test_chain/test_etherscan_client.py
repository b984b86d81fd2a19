"""Tests for the Etherscan-compatible explorer client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import CREATOR, TOKEN
from src.errors import ExplorerError
from src.parsers.etherscan.client import EtherscanClient

BASE_URL = "https://api.basescan.org/api"

ABI = [
    {"type": "function", "name": "transfer"},
    {"type": "function", "name": "balanceOf"},
    {"type": "event", "name": "Transfer"},
    {"type": "constructor"},
]


def _client(handler) -> EtherscanClient:
    return EtherscanClient(
        BASE_URL,
        "KEY",
        max_rps=1000,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestGetVerifiedAbi:
    @pytest.mark.asyncio
    async def test_function_names_only(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": json.dumps(ABI)})

        client = _client(handler)
        abi = await client.get_verified_abi(TOKEN)
        await client.close()

        assert abi.is_verified is True
        assert abi.function_names == ["transfer", "balanceOf"]
        params = seen[0].url.params
        assert params["action"] == "getabi"
        assert params["address"] == TOKEN
        assert params["apikey"] == "KEY"

    @pytest.mark.asyncio
    async def test_unverified_contract(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Contract source code not verified"}
            )

        client = _client(handler)
        abi = await client.get_verified_abi(TOKEN)
        await client.close()

        assert abi.is_verified is False
        assert abi.function_names == []

    @pytest.mark.asyncio
    async def test_unexpected_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"})

        client = _client(handler)
        with pytest.raises(ExplorerError):
            await client.get_verified_abi(TOKEN)
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        client = _client(handler)
        with pytest.raises(ExplorerError, match="HTTP 502"):
            await client.get_verified_abi(TOKEN)
        await client.close()


class TestRetries:
    @pytest.mark.asyncio
    async def test_http_429_is_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={"status": "1", "result": json.dumps(ABI)})

        client = _client(handler)
        with patch("src.parsers.etherscan.client.asyncio.sleep", new=AsyncMock()) as sleep:
            abi = await client.get_verified_abi(TOKEN)
        await client.close()

        assert abi.is_verified is True
        assert calls["n"] == 2
        sleep.assert_any_await(1.0)

    @pytest.mark.asyncio
    async def test_api_rate_limit_exhausts_retries(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, json={"status": "0", "result": "Max rate limit reached"})

        client = _client(handler)
        with patch("src.parsers.etherscan.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ExplorerError, match="after retries"):
                await client.get_verified_abi(TOKEN)
        await client.close()

        assert calls["n"] == 3


class TestGetContractCreator:
    @pytest.mark.asyncio
    async def test_creator_address(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["contractaddresses"] == TOKEN
            return httpx.Response(
                200,
                json={
                    "status": "1",
                    "result": [{"contractAddress": TOKEN, "contractCreator": CREATOR, "txHash": "0xabc"}],
                },
            )

        client = _client(handler)
        assert await client.get_contract_creator(TOKEN) == CREATOR
        await client.close()

    @pytest.mark.asyncio
    async def test_no_creation_record(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "0", "result": None})

        client = _client(handler)
        assert await client.get_contract_creator(TOKEN) is None
        await client.close()


def test_empty_base_url_rejected():
    with pytest.raises(ValueError):
        EtherscanClient("")
