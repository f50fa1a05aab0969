"""Denomination handling for keysets."""

from __future__ import annotations

import math


def keyset_denominations(keys: dict[str, str]) -> list[int]:
    """Extract denominations from keyset keys.

    Args:
        keys: Mapping of amount string -> pubkey

    Returns:
        Sorted list of denominations (ascending order)
    """
    denominations = []
    for amount_str in keys:
        try:
            denominations.append(int(amount_str))
        except (ValueError, TypeError):
            continue
    return sorted(denominations)


def split_amount(amount: int, available_denominations: list[int] | None = None) -> list[int]:
    """Split an amount into denominations, largest first.

    Uses a greedy algorithm over the keyset's denominations, falling back to
    powers of two when none are known.

    Raises:
        ValueError: If the amount cannot be represented exactly
    """
    if amount < 0:
        raise ValueError(f"Cannot split negative amount {amount}")

    if not available_denominations:
        return [1 << bit for bit in reversed(range(amount.bit_length())) if amount >> bit & 1]

    parts: list[int] = []
    remaining = amount
    for denom in sorted(available_denominations, reverse=True):
        if denom <= 0:
            continue
        count, remaining = divmod(remaining, denom)
        parts.extend([denom] * count)

    if remaining:
        raise ValueError(f"Amount {amount} cannot be represented with {available_denominations}")
    return parts


def blank_outputs_needed(fee_reserve: int) -> int:
    """Number of NUT-08 blank outputs to attach to a melt.

    max(ceil(log2(fee_reserve)), 1), or 0 without a fee reserve.
    """
    if fee_reserve <= 0:
        return 0
    return max(math.ceil(math.log2(fee_reserve)), 1)
