"""Function-name risk patterns for the static contract screen.

Patterns are lowercase substrings matched against lowercased function
names. Generic prefixes such as ``set``/``update`` are deliberately not
patterns: they would fold every fee setter into two categories.
"""

from __future__ import annotations

from dataclasses import dataclass, field

REQUIRED_ERC20_FUNCTIONS: frozenset[str] = frozenset(
    {"name", "symbol", "decimals", "totalSupply", "balanceOf", "transfer"}
)

RISK_SCORE_THRESHOLD = 6.0


@dataclass(frozen=True)
class RiskCategory:
    name: str
    weight: float
    patterns: tuple[str, ...]


ACCESS_CONTROL = RiskCategory(
    "access_control",
    3.0,
    (
        "blacklist",
        "whitelist",
        "blocklist",
        "denylist",
        "allowlist",
        "freeze",
        "isbot",
        "setbot",
        "antibot",
        "sniper",
        "excludefrom",
        "includein",
    ),
)

PRIVILEGED_CONTROL = RiskCategory(
    "privileged_control",
    2.0,
    ("owner", "admin", "governor", "operator", "authorize", "manager", "controller"),
)

TRADING_RESTRICTION = RiskCategory(
    "trading_restriction",
    3.0,
    (
        "maxtx",
        "maxtransaction",
        "maxwallet",
        "maxbuy",
        "maxsell",
        "cooldown",
        "pause",
        "enabletrading",
        "opentrading",
        "tradingenabled",
        "tradingopen",
        "tradingactive",
        "swapenabled",
        "limitsineffect",
        "removelimits",
    ),
)

FEES = RiskCategory("fees", 2.0, ("fee", "tax"))

MODIFIABLE_TOKENOMICS = RiskCategory(
    "modifiable_tokenomics",
    1.5,
    (
        "rebase",
        "setrate",
        "setsupply",
        "updatesupply",
        "setbalance",
        "setreward",
        "setthreshold",
        "setswaptokens",
        "setliquidity",
        "setmarketing",
        "setrouter",
        "setpair",
        "changerouter",
    ),
)

MINT = RiskCategory("mint", 1.5, ("mint", "issue", "createtokens"))

RISK_CATEGORIES: tuple[RiskCategory, ...] = (
    ACCESS_CONTROL,
    PRIVILEGED_CONTROL,
    TRADING_RESTRICTION,
    FEES,
    MODIFIABLE_TOKENOMICS,
    MINT,
)

SUSPICIOUS_NAMES: tuple[str, ...] = (
    "trump",
    "elon",
    "melania",
    "pudgy",
    "deepseek",
    "deep seek",
    "deep16seek",
    "deepai",
    "vine",
    "mr beast",
    "milk road",
    "mediatek",
    "postiz",
    "ai rig complex",
    "ai rig",
    "rig",
    "healthsci.ai",
    "pumpkin",
    "fartcoin",
    "ratomilton",
    "savings usds",
    "usds stablecoin",
    "history hyenas coin",
    "sony127g",
    "alpha",
    "chromia",
    "1stwinner",
    "safemoon",
)


@dataclass
class RiskAssessment:
    score: float = 0.0
    matches: dict[str, list[str]] = field(default_factory=dict)

    @property
    def categories(self) -> list[str]:
        return list(self.matches)

    def is_risky(self, threshold: float = RISK_SCORE_THRESHOLD) -> bool:
        return self.score >= threshold


def has_minimal_erc20(function_names: list[str]) -> bool:
    return REQUIRED_ERC20_FUNCTIONS.issubset(function_names)


def find_matching_functions(function_names: list[str], category: RiskCategory) -> list[str]:
    return [
        fn for fn in function_names
        if any(p in fn.lower() for p in category.patterns)
    ]


def score_functions(
    function_names: list[str], categories: tuple[RiskCategory, ...] = RISK_CATEGORIES
) -> RiskAssessment:
    """Sum the weight of every category with at least one matching function.

    A category counts once no matter how many functions hit it.
    """
    assessment = RiskAssessment()
    for category in categories:
        hits = find_matching_functions(function_names, category)
        if hits:
            assessment.matches[category.name] = hits
            assessment.score += category.weight
    return assessment


def has_suspicious_name(token_name: str, names: tuple[str, ...] = SUSPICIOUS_NAMES) -> bool:
    lowered = token_name.lower()
    return any(n in lowered for n in names)
