#!/usr/bin/env python3
"""
Move the whole balance of the active wallet to another mint.

Usage:
    python cross_mint_swap.py https://other.mint.url
"""

import asyncio
import logging
import sys

from nut_ledger import MeltNotPaid, Settings, SwapNegotiationFailure, WalletSession

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def main(to_mint_url: str) -> None:
    async with WalletSession(Settings.from_env()) as session:
        from_wallet = session.registry.require_active()
        to_wallet = await session.registry.add_wallet(to_mint_url, from_wallet.unit)

        proofs = session.ledger.by_keyset(from_wallet.keyset_id)
        if not proofs:
            logger.info("Nothing to move from %s", from_wallet.mint_url)
            return

        try:
            minted = await session.swaps.swap(to_wallet, proofs, from_wallet=from_wallet)
        except (SwapNegotiationFailure, MeltNotPaid) as e:
            logger.error("Swap failed, proofs kept: %s", e)
            return

        logger.info("Moved %d %s to %s", minted, to_wallet.unit, to_wallet.mint_url)
        for keyset_id, amount in session.ledger.balance_by_wallet.items():
            logger.info("  %s: %d", keyset_id, amount)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
