"""Data models for Etherscan-compatible explorer responses."""

from dataclasses import dataclass, field


@dataclass
class VerifiedAbi:
    """Declared function names of a contract's verified source."""

    is_verified: bool
    function_names: list[str] = field(default_factory=list)


@dataclass
class ContractCreation:
    contract_address: str
    creator_address: str
    tx_hash: str | None = None
