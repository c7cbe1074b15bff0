"""
Input validation utilities for the Buy-a-Tea client.

Provides reusable validators for EVM addresses and payment amounts.
"""
from decimal import Decimal, InvalidOperation

from web3 import Web3


def validate_evm_address(address: str) -> str:
    """
    Validate an EVM address and return its checksummed form.

    Args:
        address: 0x-prefixed hex address (any case)

    Returns:
        The EIP-55 checksummed address

    Raises:
        ValueError if the address is missing or malformed
    """
    if not address:
        raise ValueError("Wallet address is required")

    if not Web3.is_address(address):
        raise ValueError(f"Invalid EVM address: {address[:12]}...")

    return Web3.to_checksum_address(address)


def same_address(a: str | None, b: str | None) -> bool:
    """Case-insensitive address comparison; None never matches."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def eth_to_wei(amount_eth: str) -> int:
    """Convert a decimal ETH string (e.g. "0.001") to wei."""
    try:
        value = Decimal(amount_eth)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid ETH amount: {amount_eth!r}")
    if value <= 0:
        raise ValueError(f"ETH amount must be positive, got {amount_eth}")
    return Web3.to_wei(value, "ether")
