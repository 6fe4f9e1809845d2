from __future__ import annotations

# Coinbase Smart Wallet batch entry point
SMART_WALLET_ABI = [
    {
        "type": "function",
        "stateMutability": "payable",
        "name": "executeBatch",
        "inputs": [
            {
                "name": "calls",
                "type": "tuple[]",
                "components": [
                    {"name": "target", "type": "address"},
                    {"name": "value", "type": "uint256"},
                    {"name": "data", "type": "bytes"},
                ],
            }
        ],
        "outputs": [],
    },
]

ENTRY_POINT_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "getNonce",
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "key", "type": "uint192"},
        ],
        "outputs": [{"name": "nonce", "type": "uint256"}],
    },
]
