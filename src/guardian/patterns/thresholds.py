"""named thresholds for every heuristic pattern rule. amounts are raw base units."""

# rug pull
LARGE_LIQUIDITY_REMOVAL = 1_000_000_000
LARGE_MINT = 1_000_000_000_000
# basis points, 1000 = 10%
HIGH_FEE_BPS = 1_000

# gas
GAS_ELEVATED = 500_000
GAS_HIGH = 1_000_000
GAS_EXTREME = 2_000_000

# slippage, percent of amount in
SLIPPAGE_HIGH_PCT = 5
SLIPPAGE_CRITICAL_PCT = 20

LARGE_TRADE = 100_000_000_000_000

# deadline arguments look like unix timestamps in this range
DEADLINE_MIN = 1_700_000_000
DEADLINE_MAX = 2_000_000_000

BATCH_EVENT_COUNT = 10
BATCH_LIST_LENGTH = 5

MULTI_TRANSFER_EVENTS = 3
MULTI_TRANSFER_HIGH = 10

LARGE_STATE_CHANGE = 10 ** 18

MAX_U64 = 2 ** 64 - 1
MAX_U128 = 2 ** 128 - 1
MAX_U256 = 2 ** 256 - 1
UNLIMITED_VALUES = (MAX_U64, MAX_U128, MAX_U256)
# an approval within 1% of a max value counts as unlimited
UNLIMITED_RATIO_NUM = 99
UNLIMITED_RATIO_DEN = 100


def is_near_unlimited(value: int) -> bool:
    return any(value * UNLIMITED_RATIO_DEN >= limit * UNLIMITED_RATIO_NUM for limit in UNLIMITED_VALUES)
