CHAIN_ID_ETHEREUM = 1
CHAIN_ID_BASE = 8453

CHAIN_CODE_TO_ID = {
    "base": CHAIN_ID_BASE,
    "ethereum": CHAIN_ID_ETHEREUM,
    "mainnet": CHAIN_ID_ETHEREUM,
}

CHAIN_ID_TO_CODE: dict[int, str] = {
    v: k for k, v in CHAIN_CODE_TO_ID.items() if k != "mainnet"
}

SUPPORTED_CHAINS = [
    CHAIN_ID_BASE,
]

CHAIN_EXPLORER_URLS: dict[int, str] = {
    CHAIN_ID_ETHEREUM: "https://etherscan.io/",
    CHAIN_ID_BASE: "https://basescan.org/",
}
