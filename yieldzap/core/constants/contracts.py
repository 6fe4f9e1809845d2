from eth_utils import to_checksum_address

# Tokens (Base)
BASE_USDC = to_checksum_address("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913")
BASE_USDC_DECIMALS = 6
BASE_WETH = to_checksum_address("0x4200000000000000000000000000000000000006")

# Index token bought and sold through Odos
LCAP_TOKEN = to_checksum_address("0x4da9a0f397db1397902070f93a4d6ddbc0e0e6e8")
LCAP_DECIMALS = 18

INDEX_TOKENS: dict[str, dict[str, str | int]] = {
    "lcap": {"address": LCAP_TOKEN, "decimals": LCAP_DECIMALS, "symbol": "LCAP"},
}

# Aave V3
AAVE_V3_POOL = to_checksum_address("0xA238Dd80C259a72e81d7e4664a9801593F98d1c5")
AAVE_V3_A_USDC = to_checksum_address("0x4e65fE4DbA92790696d040ac24Aa414708F5c0AB")

# Compound V3
COMPOUND_COMET_USDC = to_checksum_address("0xb125E6687d4313864e53df431d5425969c15Eb2F")
COMPOUND_COMET_REWARDS = to_checksum_address(
    "0x123964802e6ABabBE1Bc9547D72Ef1B69B00A6b1"
)
COMPOUND_COMP_TOKEN = to_checksum_address("0x9e1028F5F1D5eDE59748FFceE5532509976840E0")

# Fluid
FLUID_F_USDC = to_checksum_address("0xf42f5795D9ac7e9D757dB633D693cD548Cfd9169")

# MetaMorpho (ERC-4626) USDC vaults
MORPHO_USDC_VAULT = to_checksum_address("0x0FaBfEAcedf47e890c50C8120177fff69C6a1d9B")
MORPHO_RE7_USDC_VAULT = to_checksum_address(
    "0xB7890CEE6CF4792cdCC13489D36D9d42726ab863"
)
SPARK_USDC_VAULT = to_checksum_address("0x7BfA7C4f149E7415b73bdeDfe609237e29CBF34A")
SEAMLESS_USDC_VAULT = to_checksum_address("0x616a4E1db48e22028f6bbf20444Cd3b8e3273738")
MOONWELL_USDC_VAULT = to_checksum_address("0xc1256Ae5FF1cf2719D4937adb3bbCCab2E00A2Ca")

# Odos
ODOS_ROUTER_V3 = to_checksum_address("0x0D05a7D3448512B78fa8A9e46c4872C88C4a0D05")

# ERC-4337
ENTRY_POINT_V06 = to_checksum_address("0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789")
