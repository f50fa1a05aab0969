import asyncio

from nut_ledger import Settings, WalletSession


async def main():
    # State path and default mint come from NUT_LEDGER_* variables or .env
    async with WalletSession(Settings.from_env()) as session:
        print(f"Balance: {session.balance} sats")

        # Mint 10 sats
        pending = await session.payments.receive(10)
        print(f"\nPay this invoice:\n{pending.invoice}")

        outcome = await pending.wait()
        print(f"\n✓ Receive finished: {outcome.value}")

        # Send 5 sats
        if session.balance >= 5:
            token = await session.send_token(5)
            print(f"\nCashu token:\n{token}")
            print(f"\nRemaining balance: {session.balance} sats")
        else:
            print("Insufficient balance")


if __name__ == "__main__":
    asyncio.run(main())
