GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# ERC-4337 gas padding applied to raw bundler estimates
VERIFICATION_GAS_MULTIPLIER = 2.0
CALL_GAS_MULTIPLIER = 1.3
PRE_VERIFICATION_GAS_MULTIPLIER = 1.2

# Timeout constants (seconds)
DEFAULT_HTTP_TIMEOUT = 30.0  # HTTP client timeout
DEFAULT_TRANSACTION_TIMEOUT = 180  # Transaction receipt timeout (seconds)
USER_OPERATION_TIMEOUT = 120  # UserOperation receipt timeout (seconds)
USER_OPERATION_POLL_INTERVAL = 2.0

# Odos quote limits
DEFAULT_SLIPPAGE_PCT = 1.0
MIN_SLIPPAGE_PCT = 0.1
MAX_SLIPPAGE_PCT = 10.0
MAX_PRICE_IMPACT_PCT = 10.0
QUOTE_RATE_LIMIT = 60  # requests per window
QUOTE_RATE_WINDOW_SECONDS = 60.0

# Routing thresholds
MIN_NATIVE_GAS_WEI = 100_000_000_000_000  # 0.0001 ETH
GASLESS_USDC_RESERVE = 100_000  # 0.1 USDC kept back for paymaster fees
PENDING_INTENT_TTL_SECONDS = 300
DEPOSIT_MONITOR_WINDOW_MINUTES = 5
MAX_ERROR_DETAIL_CHARS = 200

ADAPTER_AAVE = "AAVE"
ADAPTER_COMPOUND = "COMPOUND"
ADAPTER_FLUID = "FLUID"
ADAPTER_ERC4626 = "ERC4626"
ADAPTER_ODOS = "ODOS"
ADAPTER_LEDGER = "LEDGER"

MAX_UINT256 = 2**256 - 1
