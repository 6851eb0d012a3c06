"""CLI entry point for Scam Watcher."""

from __future__ import annotations

import signal
import threading

import click
from imapclient.exceptions import IMAPClientError

from .config import Settings, load_accounts, load_settings, resolve_accounts_path
from .display import console, display_accounts, display_auth_results, display_folders, setup_logging
from .errors import AuthenticationFailure, ConfigError, TransportFailure
from .folders import find_spam_folder
from .models import AccountConfig
from .transport import MailSession
from .watcher import WatcherGroup, build_watcher

_config_option = click.option(
    "-c",
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Accounts JSON file (defaults to $ACCOUNTS_CONFIG_PATH).",
)


def _load(config_path: str | None) -> tuple[Settings, list[AccountConfig], object]:
    try:
        settings = load_settings()
        path = resolve_accounts_path(config_path, settings)
        accounts = load_accounts(path, settings)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    return settings, accounts, path


@click.group()
@click.version_option(version="0.1.0", prog_name="scam-watcher")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Scam Watcher - watch IMAP inboxes and quarantine likely scams."""
    setup_logging(verbose)


@cli.command()
@_config_option
def watch(config_path: str | None) -> None:
    """Watch every configured account until interrupted."""
    settings, accounts, path = _load(config_path)
    if not accounts:
        raise click.ClickException("No accounts configured.")
    if not settings.anthropic_api_key:
        raise click.ClickException("ANTHROPIC_API_KEY is not set.")

    group = WatcherGroup([build_watcher(account, settings, path) for account in accounts])
    shutdown = threading.Event()

    def _on_signal(signum, frame) -> None:  # noqa: ANN001
        console.print("\n[dim]Shutting down gracefully...[/dim]")
        shutdown.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    console.print(f"[bold]Watching {len(accounts)} account(s).[/bold] Press Ctrl+C to stop.")
    group.start()
    while not shutdown.wait(1.0):
        pass

    group.stop()
    group.join(timeout=10)


@cli.command()
@_config_option
def accounts(config_path: str | None) -> None:
    """List configured accounts and their analysis watermarks."""
    _settings, loaded, _path = _load(config_path)
    if not loaded:
        console.print("[dim]No accounts configured.[/dim]")
        return
    display_accounts(loaded)


@cli.command()
@_config_option
def auth(config_path: str | None) -> None:
    """Check that every account can log in."""
    _settings, loaded, _path = _load(config_path)

    results: list[tuple[AccountConfig, str]] = []
    for account in loaded:
        try:
            session = MailSession.open(account)
        except AuthenticationFailure:
            results.append((account, "invalid credentials"))
            continue
        except (IMAPClientError, OSError, TransportFailure):
            results.append((account, "unreachable"))
            continue
        session.close()
        results.append((account, "authenticated"))

    display_auth_results(results)


@cli.command()
@click.argument("account_name")
@_config_option
def folders(account_name: str, config_path: str | None) -> None:
    """Show ACCOUNT_NAME's folders and the quarantine folder that would be used."""
    _settings, loaded, _path = _load(config_path)

    matches = [a for a in loaded if account_name in (a.identifier, a.user)]
    if not matches:
        raise click.ClickException(f"No account named {account_name!r}.")
    account = matches[0]

    try:
        session = MailSession.open(account)
    except AuthenticationFailure as e:
        raise click.ClickException(str(e)) from e
    except (IMAPClientError, OSError, TransportFailure) as e:
        raise click.ClickException(f"Cannot reach {account.host}: {e}") from e

    try:
        found = session.list_folders()
    finally:
        session.close()

    display_folders(account, found, find_spam_folder(found))
