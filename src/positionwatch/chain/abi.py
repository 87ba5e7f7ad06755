"""Minimal contract ABIs for the reads the monitor performs.

Only the view functions actually called are listed.
"""

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def _view(name: str, inputs: list[tuple[str, str]], outputs: list[tuple[str, str]]) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


ERC721_ABI = [
    _view("ownerOf", [("tokenId", "uint256")], [("", "address")]),
]

ERC20_ABI = [
    _view("symbol", [], [("", "string")]),
    _view("decimals", [], [("", "uint8")]),
]

TROVE_NFT_ABI = [
    _view("ownerOf", [("tokenId", "uint256")], [("", "address")]),
    _view("troveManager", [], [("", "address")]),
    _view("collToken", [], [("", "address")]),
]

# getLatestTroveData returns a LatestTroveData struct; outputs are listed flat
# so web3 decodes it to a tuple in this order.
LATEST_TROVE_DATA_FIELDS = (
    "entireDebt",
    "entireColl",
    "redistBoldDebtGain",
    "redistCollGain",
    "accruedInterest",
    "recordedDebt",
    "annualInterestRate",
    "weightedRecordedDebt",
    "accruedBatchManagementFee",
    "lastInterestRateAdjTime",
)

TROVE_MANAGER_ABI = [
    {
        "type": "function",
        "name": "getLatestTroveData",
        "stateMutability": "view",
        "inputs": [{"name": "_troveId", "type": "uint256"}],
        "outputs": [
            {
                "name": "trove",
                "type": "tuple",
                "components": [{"name": f, "type": "uint256"} for f in LATEST_TROVE_DATA_FIELDS],
            }
        ],
    },
    _view("getTroveStatus", [("_troveId", "uint256")], [("", "uint8")]),
    _view("priceFeed", [], [("", "address")]),
    _view("MCR", [], [("", "uint256")]),
    _view("getCurrentICR", [("_troveId", "uint256"), ("_price", "uint256")], [("", "uint256")]),
]

PRICE_FEED_ABI = [
    # fetchPrice/fetchRedemptionPrice are nonpayable on-chain but safe to eth_call.
    _view("fetchPrice", [], [("price", "uint256"), ("isValid", "bool")]),
    _view("fetchRedemptionPrice", [], [("price", "uint256"), ("isValid", "bool")]),
    _view("lastGoodPrice", [], [("", "uint256")]),
]

POSITION_MANAGER_ABI = [
    _view("ownerOf", [("tokenId", "uint256")], [("", "address")]),
    _view(
        "positions",
        [("tokenId", "uint256")],
        [
            ("nonce", "uint96"),
            ("operator", "address"),
            ("token0", "address"),
            ("token1", "address"),
            ("fee", "uint24"),
            ("tickLower", "int24"),
            ("tickUpper", "int24"),
            ("liquidity", "uint128"),
            ("feeGrowthInside0LastX128", "uint256"),
            ("feeGrowthInside1LastX128", "uint256"),
            ("tokensOwed0", "uint128"),
            ("tokensOwed1", "uint128"),
        ],
    ),
    _view("factory", [], [("", "address")]),
]

FACTORY_ABI = [
    _view(
        "getPool",
        [("tokenA", "address"), ("tokenB", "address"), ("fee", "uint24")],
        [("", "address")],
    ),
]

POOL_ABI = [
    _view(
        "slot0",
        [],
        [
            ("sqrtPriceX96", "uint160"),
            ("tick", "int24"),
            ("observationIndex", "uint16"),
            ("observationCardinality", "uint16"),
            ("observationCardinalityNext", "uint16"),
            ("feeProtocol", "uint8"),
            ("unlocked", "bool"),
        ],
    ),
    _view("token0", [], [("", "address")]),
    _view("token1", [], [("", "address")]),
]
