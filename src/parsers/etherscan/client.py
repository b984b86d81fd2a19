"""Etherscan-compatible block explorer client (Basescan by default).

Only two contract endpoints are used: getabi for the verified function
surface and getcontractcreation for the deployer address.
"""

import asyncio
import json

import httpx
from loguru import logger

from src.errors import ExplorerError
from src.parsers.etherscan.models import ContractCreation, VerifiedAbi
from src.parsers.rate_limiter import RateLimiter

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

# Explorer answers status "0" with these texts for contracts without source
_UNVERIFIED_MARKERS = ("not verified", "source code not verified")
_RATE_LIMIT_MARKERS = ("rate limit", "max rate limit")


class EtherscanClient:
    """Async HTTP client for an Etherscan-compatible API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        max_rps: float = 4.0,
        chain_id: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Explorer URL is empty")
        self._base_url = base_url
        self._api_key = api_key
        self._chain_id = chain_id
        self._rate_limiter = RateLimiter(max_rps)
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, params: dict[str, str]) -> dict:
        """GET with rate limiting and retries. Returns the decoded JSON body."""
        query = dict(params)
        if self._api_key:
            query["apikey"] = self._api_key
        if self._chain_id is not None:
            query["chainid"] = str(self._chain_id)

        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES + 1):
            delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.get(self._base_url, params=query)

                if resp.status_code == 429:
                    logger.debug(f"[EXPLORER] Rate limited, waiting {delay}s")
                    last_error = ExplorerError("HTTP 429")
                    await asyncio.sleep(delay)
                    continue

                if resp.status_code != 200:
                    raise ExplorerError(f"HTTP {resp.status_code} for {params.get('action')}")

                data = resp.json()
                result = str(data.get("result", ""))
                if data.get("status") == "0" and any(m in result.lower() for m in _RATE_LIMIT_MARKERS):
                    logger.debug(f"[EXPLORER] API rate limit, waiting {delay}s")
                    last_error = ExplorerError(result)
                    await asyncio.sleep(delay)
                    continue
                return data

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = e
                if attempt < MAX_RETRIES:
                    logger.debug(f"[EXPLORER] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)

        raise ExplorerError(f"Explorer request failed after retries: {last_error}")

    async def get_verified_abi(self, address: str) -> VerifiedAbi:
        """Function names declared by the verified ABI, or is_verified=False."""
        data = await self._request({"module": "contract", "action": "getabi", "address": address})
        return _parse_abi(data, address)

    async def get_contract_creator(self, address: str) -> str | None:
        data = await self._request(
            {"module": "contract", "action": "getcontractcreation", "contractaddresses": address}
        )
        creations = _parse_creations(data)
        if not creations:
            return None
        return creations[0].creator_address


def _parse_abi(data: dict, address: str) -> VerifiedAbi:
    result = data.get("result")
    if data.get("status") != "1":
        text = str(result or data.get("message", "")).lower()
        if any(m in text for m in _UNVERIFIED_MARKERS):
            return VerifiedAbi(is_verified=False)
        raise ExplorerError(f"getabi failed for {address}: {result}")

    try:
        abi = json.loads(result) if isinstance(result, str) else result
    except json.JSONDecodeError as e:
        raise ExplorerError(f"getabi returned malformed ABI for {address}") from e

    names = [entry["name"] for entry in abi if entry.get("type") == "function" and entry.get("name")]
    return VerifiedAbi(is_verified=True, function_names=names)


def _parse_creations(data: dict) -> list[ContractCreation]:
    if data.get("status") != "1":
        return []
    out = []
    for row in data.get("result") or []:
        creator = row.get("contractCreator")
        if not creator:
            continue
        out.append(
            ContractCreation(
                contract_address=row.get("contractAddress", ""),
                creator_address=creator,
                tx_hash=row.get("txHash"),
            )
        )
    return out
