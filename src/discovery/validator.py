"""Static risk screen for freshly deployed contracts.

Steps, in order, each able to reject:
1. Verified source exists on the explorer
2. Minimal ERC-20 surface is declared
3. Live name() is not on the suspicious-name list
4. Weighted function-name risk score stays below the threshold
Then the creator address is looked up for survivors.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from src.chain.abis import ERC20_ABI
from src.chain.provider import ChainProvider
from src.discovery.patterns import (
    RISK_SCORE_THRESHOLD,
    has_minimal_erc20,
    has_suspicious_name,
    score_functions,
)
from src.parsers.etherscan.client import EtherscanClient
from src.utils.logger import short


@dataclass
class ValidationResult:
    is_verified: bool
    is_valid: bool
    creator_address: str | None = None
    risk_score: float = 0.0
    risk_categories: list[str] = field(default_factory=list)
    reason: str | None = None


class ContractValidator:
    def __init__(
        self,
        provider: ChainProvider,
        explorer: EtherscanClient,
        *,
        risk_threshold: float = RISK_SCORE_THRESHOLD,
    ) -> None:
        self._provider = provider
        self._explorer = explorer
        self._risk_threshold = risk_threshold

    async def _read_name(self, address: str) -> str:
        contract = self._provider.contract(address, ERC20_ABI)
        return await contract.functions.name().call()

    async def validate(self, address: str) -> ValidationResult:
        """Screen one contract. Never raises: fetch errors read as invalid."""
        try:
            abi = await self._explorer.get_verified_abi(address)
            if not abi.is_verified:
                logger.debug(f"[VALIDATOR] {short(address)} not verified, skipping")
                return ValidationResult(is_verified=False, is_valid=False, reason="unverified")

            if not has_minimal_erc20(abi.function_names):
                logger.debug(f"[VALIDATOR] {short(address)} is not a minimal ERC-20")
                return ValidationResult(is_verified=True, is_valid=False, reason="not_erc20")

            name = await self._read_name(address)
            if has_suspicious_name(name):
                logger.info(f"[VALIDATOR] {short(address)} suspicious name '{name}'")
                return ValidationResult(is_verified=True, is_valid=False, reason="suspicious_name")

            risk = score_functions(abi.function_names)
            if risk.is_risky(self._risk_threshold):
                logger.info(
                    f"[VALIDATOR] {short(address)} risk {risk.score} "
                    f"({', '.join(risk.categories)}) >= {self._risk_threshold}"
                )
                return ValidationResult(
                    is_verified=True,
                    is_valid=False,
                    risk_score=risk.score,
                    risk_categories=risk.categories,
                    reason="risky_functions",
                )

            creator = await self._explorer.get_contract_creator(address)
            logger.info(f"[VALIDATOR] {short(address)} '{name}' passed (risk {risk.score})")
            return ValidationResult(
                is_verified=True,
                is_valid=True,
                creator_address=creator,
                risk_score=risk.score,
                risk_categories=risk.categories,
            )

        except Exception as e:
            logger.warning(f"[VALIDATOR] {short(address)} validation error: {e}")
            return ValidationResult(is_verified=True, is_valid=False, reason="error")
