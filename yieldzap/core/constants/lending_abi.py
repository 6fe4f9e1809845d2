from __future__ import annotations

AAVE_POOL_ABI = [
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "supply",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "onBehalfOf", "type": "address"},
            {"name": "referralCode", "type": "uint16"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "withdraw",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "to", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

COMET_ABI = [
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "supply",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "withdraw",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

COMET_REWARDS_ABI = [
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "claim",
        "inputs": [
            {"name": "comet", "type": "address"},
            {"name": "src", "type": "address"},
            {"name": "shouldAccrue", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "getRewardOwed",
        "inputs": [
            {"name": "comet", "type": "address"},
            {"name": "account", "type": "address"},
        ],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "token", "type": "address"},
                    {"name": "owed", "type": "uint256"},
                ],
            }
        ],
    },
]
