from __future__ import annotations

from typing import Any


# Subset of the round contract's ABI the server reads and writes.
ROUND_CONTRACT_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "BUY_IN",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "startGame",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "_commitment", "type": "bytes32"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "declareWinner",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "winner", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "endGame",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getGameInfo",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "_gameId", "type": "uint256"},
            {"name": "_commitment", "type": "bytes32"},
            {"name": "_pot", "type": "uint256"},
            {"name": "_endTime", "type": "uint256"},
            {"name": "_active", "type": "bool"},
            {"name": "_timeRemaining", "type": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "hasBoughtIn",
        "stateMutability": "view",
        "inputs": [{"name": "player", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getPlayerBuyIn",
        "stateMutability": "view",
        "inputs": [{"name": "player", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]
