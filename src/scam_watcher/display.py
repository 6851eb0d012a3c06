"""Rich-based display and logging setup for Scam Watcher."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import format_instant
from .models import AccountConfig

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route all log records through a RichHandler on the shared console."""
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Keep library chatter out of INFO output
    for name in ("imapclient", "httpx", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def display_accounts(accounts: list[AccountConfig]) -> None:
    """Show configured accounts and how far each has been analyzed."""
    table = Table(title="Accounts")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Label")
    table.add_column("User")
    table.add_column("Server")
    table.add_column("TLS")
    table.add_column("Threshold", justify="right")
    table.add_column("Analyzed until")

    for idx, account in enumerate(accounts, start=1):
        watermark = account.emails_analyzed_until
        table.add_row(
            str(idx),
            account.identifier,
            account.user,
            f"{account.host}:{account.port}",
            "yes" if account.tls else "[yellow]no[/yellow]",
            f"{account.scam_threshold:.0f}%",
            format_instant(watermark) if watermark else "[dim]never (full scan)[/dim]",
        )

    console.print(table)


def display_auth_results(results: list[tuple[AccountConfig, str]]) -> None:
    """Show one line per account with its authentication outcome."""
    colors = {"authenticated": "green", "invalid credentials": "red", "unreachable": "yellow"}
    for account, outcome in results:
        color = colors.get(outcome, "white")
        console.print(f"[bold]{account.identifier}[/bold]: [{color}]{outcome}[/{color}]")


def display_folders(account: AccountConfig, folders: list[tuple[str, str]], target: str | None) -> None:
    """List an account's folders, highlighting the quarantine folder."""
    table = Table(title=f"Folders for {account.identifier}")
    table.add_column("Folder")
    table.add_column("Delimiter", justify="center", style="dim")

    for delimiter, name in folders:
        shown = f"[bold red]{name}[/bold red]" if name == target else name
        table.add_row(shown, delimiter)

    console.print(table)
    if target:
        message = f"Flagged messages will be moved to [bold]{target}[/bold]."
    else:
        message = "[yellow]No spam/junk folder found; a [bold]Spam[/bold] folder will be created on first use.[/yellow]"
    console.print(Panel(message, title="Quarantine folder"))
