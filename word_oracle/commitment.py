from __future__ import annotations

from web3 import Web3


def commit(secret: str) -> str:
    """Return the public commitment for `secret`.

    keccak-256 over the UTF-8 bytes, as a 0x-prefixed 32-byte hex string. This is
    the same digest the ledger contract stores as its bytes32 commitment, so anyone
    can check a revealed word against the round that published it.
    """

    return Web3.to_hex(Web3.keccak(text=secret))


def commitment_bytes(commitment: str) -> bytes:
    return Web3.to_bytes(hexstr=commitment)


def verify_reveal(*, secret: str, commitment: str) -> bool:
    return commit(secret).lower() == commitment.lower()
