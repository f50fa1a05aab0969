"""nut-ledger CLI - Multi-mint Cashu wallet."""

import asyncio
import logging
import shutil
from typing import Annotated, Optional

import qrcode
import qrcode.constants
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import Settings, validate_mint_url
from .payments import ReceiveOutcome
from .session import WalletSession
from .token import decode_token
from .types import MintError, WalletError

app = typer.Typer(
    name="nutledger",
    help="nut-ledger - Multi-mint Cashu wallet CLI",
    rich_markup_mode="markdown",
)
console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def get_terminal_size() -> tuple[int, int]:
    """Get terminal size (width, height)."""
    size = shutil.get_terminal_size(fallback=(80, 24))
    return size.columns, size.lines


def _matrix_to_text(matrix: list[list[bool]]) -> str:
    """Convert QR code matrix to text using Unicode half-block characters."""
    qr_text = ""
    for i in range(0, len(matrix), 2):
        line = ""
        for j in range(len(matrix[i])):
            top = matrix[i][j]
            bottom = matrix[i + 1][j] if i + 1 < len(matrix) else False
            if top and bottom:
                line += "█"
            elif top:
                line += "▀"
            elif bottom:
                line += "▄"
            else:
                line += " "
        qr_text += line + "\n"
    return qr_text


def display_qr_code(data: str, title: str = "QR Code") -> None:
    """Display a QR code in the terminal when it fits."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=1,
        border=1,
    )
    qr.add_data(data.upper() if data.lower().startswith("ln") else data)
    qr.make(fit=True)
    matrix = qr.get_matrix()

    term_width, term_height = get_terminal_size()
    # half-blocks: two matrix rows per line
    if len(matrix[0]) > term_width - 6 or (len(matrix) + 1) // 2 > term_height - 8:
        console.print("[dim]QR code too large for this terminal[/dim]")
        return

    console.print(
        Panel(
            _matrix_to_text(matrix).rstrip(),
            title=f"[cyan]📱 {title}[/cyan]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def handle_wallet_error(e: Exception) -> None:
    """Handle common wallet errors with user-friendly messages."""
    if isinstance(e, WalletError):
        kind = getattr(e, "kind", None)
        suffix = f" [dim]({kind.value})[/dim]" if kind is not None else ""
        console.print(f"[red]❌ {e}[/red]{suffix}")
    elif isinstance(e, MintError):
        console.print(f"[red]🏦 Mint error: {e}[/red]")
    else:
        console.print(f"[red]❌ Error: {e}[/red]")


def _settings() -> Settings:
    return Settings.from_env()


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
) -> None:
    """nut-ledger - Multi-mint Cashu wallet.

    📝 CONFIGURATION (environment or cwd/.env file):
    • NUT_LEDGER_STATE: state file (default ~/.nut-ledger/state.json)
    • NUT_LEDGER_DEFAULT_MINT or CASHU_MINTS: mint added on first run
    • NUT_LEDGER_LOG_LEVEL: logging level (default WARNING)
    """
    configure_logging("DEBUG" if verbose else _settings().log_level)


@app.command()
def balance() -> None:
    """Show total balance and balance per wallet."""

    async def _balance() -> None:
        async with WalletSession(_settings()) as session:
            by_wallet = session.ledger.balance_by_wallet
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Keyset", style="dim")
            table.add_column("Mint", style="green")
            table.add_column("Balance", justify="right")
            for keyset_id, amount in by_wallet.items():
                wallet = session.registry.get(keyset_id)
                table.add_row(
                    keyset_id,
                    wallet.mint_url if wallet else "?",
                    f"{amount} {wallet.unit if wallet else ''}".strip(),
                )
            if by_wallet:
                console.print(table)
            console.print(f"[bold]💰 Total: {session.balance}[/bold]")

    try:
        asyncio.run(_balance())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def wallets() -> None:
    """List registered wallets; the active one is marked."""

    async def _wallets() -> None:
        async with WalletSession(_settings()) as session:
            active = session.registry.active
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("", width=1)
            table.add_column("Keyset")
            table.add_column("Mint", style="green")
            table.add_column("Unit", style="blue")
            table.add_column("Fee (ppk)", justify="right")
            for keyset_id, wallet in session.registry.wallets.items():
                table.add_row(
                    "*" if wallet is active else "",
                    keyset_id,
                    wallet.mint_url,
                    wallet.unit,
                    str(wallet.input_fee_ppk),
                )
            console.print(table)

    try:
        asyncio.run(_wallets())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command("add-mint")
def add_mint(
    mint_url: Annotated[str, typer.Argument(help="Mint URL")],
    unit: Annotated[str, typer.Option("--unit", "-u", help="Currency unit")] = "sat",
) -> None:
    """Add a wallet for a mint's keyset."""
    mint_url = mint_url.rstrip("/")
    if not validate_mint_url(mint_url):
        console.print(f"[red]❌ Invalid mint URL: {mint_url}[/red]")
        raise typer.Exit(1)

    async def _add() -> None:
        async with WalletSession(_settings()) as session:
            wallet = await session.registry.add_wallet(mint_url, unit)
            console.print(f"[green]✅ Added {wallet.mint_url} ({wallet.keyset_id}, {unit})[/green]")

    try:
        asyncio.run(_add())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def use(keyset_id: Annotated[str, typer.Argument(help="Keyset ID")]) -> None:
    """Make a wallet the active one."""

    async def _use() -> None:
        async with WalletSession(_settings()) as session:
            wallet = session.registry.get(keyset_id)
            if wallet is None:
                console.print(f"[red]❌ Unknown keyset: {keyset_id}[/red]")
                raise typer.Exit(1)
            session.registry.set_active(wallet, keyset_id)
            console.print(f"[green]✅ Active wallet: {wallet.mint_url} ({keyset_id})[/green]")

    try:
        asyncio.run(_use())
    except typer.Exit:
        raise
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def invoice(
    amount: Annotated[int, typer.Argument(help="Amount to receive")],
    timeout: Annotated[
        float, typer.Option("--timeout", "-t", help="Seconds to wait for payment")
    ] = 600,
    qr: Annotated[bool, typer.Option("--qr/--no-qr", help="Show QR code")] = True,
) -> None:
    """Create a Lightning invoice and mint once it is paid."""

    async def _invoice() -> ReceiveOutcome:
        async with WalletSession(_settings()) as session:
            pending = await session.payments.receive(amount)
            console.print("[yellow]⚡ Pay this invoice:[/yellow]")
            console.print(pending.invoice)
            if qr:
                display_qr_code(pending.invoice, title="Lightning Invoice")

            with console.status("Waiting for payment..."):
                done, _ = await asyncio.wait({pending.task}, timeout=timeout)
            if not done:
                pending.cancel()
            outcome = await pending.wait()

            if outcome == ReceiveOutcome.MINTED:
                console.print(f"[green]✅ Received {amount}. Balance: {session.balance}[/green]")
            elif outcome == ReceiveOutcome.ISSUED:
                console.print("[yellow]⚠️ Quote was already issued[/yellow]")
            else:
                console.print(f"[yellow]⏰ Timed out; quote {pending.quote_id} not paid[/yellow]")
            return outcome

    try:
        outcome = asyncio.run(_invoice())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)
    if outcome != ReceiveOutcome.MINTED:
        raise typer.Exit(1)


@app.command()
def pay(invoice: Annotated[str, typer.Argument(help="bolt11 invoice")]) -> None:
    """Pay a Lightning invoice from the active wallet."""

    async def _pay() -> None:
        async with WalletSession(_settings()) as session:
            result = await session.payments.send(invoice)
            console.print("[green]✅ Payment sent[/green]")
            if result.preimage:
                console.print(f"[dim]Preimage: {result.preimage}[/dim]")
            if result.change:
                console.print(f"[dim]Fee change: {sum(p['amount'] for p in result.change)}[/dim]")
            console.print(f"Balance: {session.balance}")

    try:
        asyncio.run(_pay())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def swap(
    to_keyset: Annotated[str, typer.Argument(help="Destination keyset ID")],
    from_keyset: Annotated[
        Optional[str], typer.Option("--from", help="Source keyset ID (default: active)")
    ] = None,
) -> None:
    """Move the whole balance of one wallet to another mint over Lightning."""

    async def _swap() -> None:
        async with WalletSession(_settings()) as session:
            to_wallet = session.registry.get(to_keyset)
            from_wallet = (
                session.registry.get(from_keyset)
                if from_keyset
                else session.registry.require_active()
            )
            if to_wallet is None or from_wallet is None:
                console.print(f"[red]❌ Unknown keyset: {to_keyset if to_wallet is None else from_keyset}[/red]")
                raise typer.Exit(1)

            proofs = session.ledger.by_keyset(from_wallet.keyset_id)
            minted = await session.swaps.swap(to_wallet, proofs, from_wallet=from_wallet)
            console.print(
                f"[green]✅ Moved {minted} {to_wallet.unit} to {to_wallet.mint_url}[/green]"
            )

    try:
        asyncio.run(_swap())
    except typer.Exit:
        raise
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def send(
    amount: Annotated[int, typer.Argument(help="Amount to send")],
    v4: Annotated[bool, typer.Option("--v4", help="Emit a cashuB (V4) token")] = False,
) -> None:
    """Create a Cashu token from the active wallet."""

    async def _send() -> None:
        async with WalletSession(_settings()) as session:
            token = await session.send_token(amount, version=4 if v4 else 3)
            console.print(Panel(token, title="[cyan]Cashu Token[/cyan]", border_style="cyan"))

    try:
        asyncio.run(_send())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def redeem(token: Annotated[str, typer.Argument(help="Cashu token")]) -> None:
    """Redeem a Cashu token into the matching wallet."""

    async def _redeem() -> None:
        async with WalletSession(_settings()) as session:
            received = await session.redeem_token(token)
            console.print(f"[green]✅ Redeemed {received}. Balance: {session.balance}[/green]")

    try:
        asyncio.run(_redeem())
    except Exception as e:
        handle_wallet_error(e)
        raise typer.Exit(1)


@app.command()
def decode(token: Annotated[str, typer.Argument(help="Cashu token")]) -> None:
    """Show the contents of a Cashu token without redeeming it."""
    try:
        decoded = decode_token(token)
    except WalletError as e:
        handle_wallet_error(e)
        raise typer.Exit(1)

    console.print(f"[bold]Amount:[/bold] {decoded.amount} {decoded.unit or 'sat'}")
    console.print(f"[bold]Mints:[/bold] {', '.join(decoded.mints)}")
    if decoded.memo:
        console.print(f"[bold]Memo:[/bold] {decoded.memo}")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Keyset")
    table.add_column("Amount", justify="right")
    table.add_column("Secret", style="dim")
    for proof in decoded.proofs:
        table.add_row(proof["id"], str(proof["amount"]), proof["secret"][:16] + "…")
    console.print(table)


if __name__ == "__main__":
    app()
