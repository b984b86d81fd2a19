"""Minimal ABI fragments for the contracts the sentinel talks to."""


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str], *, view: bool = True, payable: bool = False) -> dict:
    if payable:
        mutability = "payable"
    elif view:
        mutability = "view"
    else:
        mutability = "nonpayable"
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
    }


ERC20_ABI = [
    _fn("name", [], ["string"]),
    _fn("symbol", [], ["string"]),
    _fn("decimals", [], ["uint8"]),
    _fn("totalSupply", [], ["uint256"]),
    _fn("balanceOf", [("account", "address")], ["uint256"]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"]),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"], view=False),
    _fn("transfer", [("to", "address"), ("amount", "uint256")], ["bool"], view=False),
]

UNISWAP_V2_FACTORY_ABI = [
    _fn("getPair", [("tokenA", "address"), ("tokenB", "address")], ["address"]),
]

UNISWAP_V2_PAIR_ABI = [
    _fn("getReserves", [], ["uint112", "uint112", "uint32"]),
    _fn("token0", [], ["address"]),
    _fn("token1", [], ["address"]),
]

UNISWAP_V2_ROUTER_ABI = [
    _fn("getAmountsOut", [("amountIn", "uint256"), ("path", "address[]")], ["uint256[]"]),
    _fn(
        "swapExactETHForTokensSupportingFeeOnTransferTokens",
        [("amountOutMin", "uint256"), ("path", "address[]"), ("to", "address"), ("deadline", "uint256")],
        [],
        payable=True,
    ),
    _fn(
        "swapExactTokensForETHSupportingFeeOnTransferTokens",
        [
            ("amountIn", "uint256"),
            ("amountOutMin", "uint256"),
            ("path", "address[]"),
            ("to", "address"),
            ("deadline", "uint256"),
        ],
        [],
        view=False,
    ),
]

UNISWAP_V3_FACTORY_ABI = [
    _fn("getPool", [("tokenA", "address"), ("tokenB", "address"), ("fee", "uint24")], ["address"]),
]

# QuoterV2.quoteExactInputSingle takes a struct; non-view on-chain but used via eth_call
UNISWAP_V3_QUOTER_ABI = [
    {
        "type": "function",
        "name": "quoteExactInputSingle",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [
            {"name": "amountOut", "type": "uint256"},
            {"name": "sqrtPriceX96After", "type": "uint160"},
            {"name": "initializedTicksCrossed", "type": "uint32"},
            {"name": "gasEstimate", "type": "uint256"},
        ],
    }
]

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_TOPIC = "0x" + "0" * 64
