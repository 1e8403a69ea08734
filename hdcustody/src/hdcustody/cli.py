"""
Command line interface for hdcustody wallets (``hdc``).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import httpx
import typer
from loguru import logger

from hdcustody.cli_common import resolve_wallet_path, setup_cli
from hdcustody.errors import WalletError
from hdcustody.settings import CustodySettings, ensure_config_file
from hdcustody.wallet.bip32 import generate_mnemonic, validate_mnemonic
from hdcustody.wallet.service import Wallet

app = typer.Typer(
    name="hdc",
    help="HD wallet key custody client",
    add_completion=False,
)

T = TypeVar("T")

NameOption = Annotated[str, typer.Option("--name", "-n", help="Wallet name")]
PathOption = Annotated[
    Path | None,
    typer.Option("--path", help="Wallet storage directory (default: <data-dir>/wallets/<name>)"),
]
DataDirOption = Annotated[
    Path | None, typer.Option("--data-dir", envvar="HDCUSTODY_DATA_DIR", help="Data directory")
]
LogLevelOption = Annotated[
    str | None, typer.Option("--log-level", "-l", help="Log level (overrides config)")
]
PasswordOption = Annotated[
    str | None, typer.Option("--password", "-p", help="Wallet password (unlocks before the call)")
]


def main() -> None:
    """Entry point for the ``hdc`` console script."""
    app()


def _run(coro_factory: Callable[[], Awaitable[T]]) -> T:
    try:
        return asyncio.run(coro_factory())  # type: ignore[arg-type]
    except (WalletError, httpx.HTTPError) as e:
        logger.error(str(e))
        raise typer.Exit(1) from e


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


async def _with_wallet(
    settings: CustodySettings,
    path: Path,
    password: str | None,
    action: Callable[[Wallet], Awaitable[T]],
) -> T:
    wallet = await Wallet.load(path, settings=settings)
    async with wallet:
        if password:
            await wallet.unlock(password)
        return await action(wallet)


@app.command("generate-mnemonic")
def generate_mnemonic_cmd(
    words: Annotated[int, typer.Option("--words", "-w", help="12, 15, 18, 21 or 24")] = 12,
) -> None:
    """Print a fresh BIP39 mnemonic."""
    try:
        typer.echo(generate_mnemonic(words))
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e


@app.command()
def create(
    name: NameOption,
    chain: Annotated[str | None, typer.Option("--chain", help="Chain ticker, e.g. BTC")] = None,
    network: Annotated[str | None, typer.Option("--network", help="Network name")] = None,
    path: PathOption = None,
    derivation_path: Annotated[
        str | None, typer.Option("--derivation-path", help="Spending derivation path")
    ] = None,
    base_url: Annotated[
        str | None, typer.Option("--base-url", help="Ledger service URL for this wallet")
    ] = None,
    mnemonic: Annotated[
        str | None, typer.Option("--mnemonic", "-m", help="Existing mnemonic phrase")
    ] = None,
    password: Annotated[
        str | None, typer.Option("--password", "-p", help="Wallet password")
    ] = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Create a wallet, store it encrypted and register it with the ledger service."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)

    generated = mnemonic is None
    if mnemonic is None:
        mnemonic = generate_mnemonic(settings.wallet.mnemonic_words)
    elif not validate_mnemonic(mnemonic):
        logger.error("Provided mnemonic is INVALID (bad checksum or unknown word)")
        raise typer.Exit(1)

    if password is None:
        password = typer.prompt("Wallet password", hide_input=True, confirmation_prompt=True)

    async def _create() -> str:
        wallet = await Wallet.create(
            chain=chain or settings.wallet.default_chain,
            network=network or settings.wallet.default_network,
            name=name,
            path=wallet_path,
            password=password,
            phrase=mnemonic,
            derivation_path=derivation_path,
            base_url=base_url,
            settings=settings,
        )
        async with wallet:
            return wallet.xpubkey

    xpubkey = _run(_create)

    if generated:
        typer.echo("\n" + "=" * 80)
        typer.echo("WRITE DOWN YOUR MNEMONIC - it is not stored anywhere:")
        typer.echo(mnemonic)
        typer.echo("=" * 80 + "\n")
    typer.echo(f"Wallet {name} created at {wallet_path}")
    typer.echo(f"xpub: {xpubkey}")


@app.command()
def balance(
    name: NameOption,
    path: PathOption = None,
    password: PasswordOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Show the wallet balance reported by the ledger service."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)
    result = _run(lambda: _with_wallet(settings, wallet_path, password, lambda w: w.get_balance()))
    _echo_json(result)


@app.command()
def utxos(
    name: NameOption,
    path: PathOption = None,
    password: PasswordOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List unspent outputs of the wallet."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)
    result = _run(lambda: _with_wallet(settings, wallet_path, password, lambda w: w.get_utxos()))
    _echo_json(result)


@app.command()
def register(
    name: NameOption,
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True)],
    base_url: Annotated[
        str | None, typer.Option("--base-url", help="Move the wallet to this service URL")
    ] = None,
    path: PathOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """(Re-)register the wallet with the ledger service."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)
    result = _run(
        lambda: _with_wallet(
            settings, wallet_path, password, lambda w: w.register(base_url=base_url)
        )
    )
    _echo_json(result)


@app.command("import-keys")
def import_keys(
    name: NameOption,
    keys_file: Annotated[
        Path,
        typer.Option("--keys-file", "-k", help="JSON list of {address, pubkey, private_key}"),
    ],
    path: PathOption = None,
    password: PasswordOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Import external keys. Without --password they are stored UNENCRYPTED."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)

    try:
        keys = json.loads(keys_file.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Cannot read keys file {keys_file}: {e}")
        raise typer.Exit(1) from e
    if not isinstance(keys, list):
        logger.error("Keys file must contain a JSON list")
        raise typer.Exit(1)

    if not password:
        logger.warning("No password given: imported private keys will be stored in cleartext")

    result = _run(
        lambda: _with_wallet(
            settings, wallet_path, None, lambda w: w.import_keys(keys, password=password)
        )
    )
    typer.echo(f"Imported {len(keys)} keys")
    if result is not None:
        _echo_json(result)


@app.command()
def broadcast(
    name: NameOption,
    tx: Annotated[str, typer.Option("--tx", help="Raw signed transaction (hex)")],
    path: PathOption = None,
    password: PasswordOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Submit a signed transaction through the ledger service."""
    settings = setup_cli(log_level, data_dir)
    wallet_path = resolve_wallet_path(settings, name, path)
    result = _run(lambda: _with_wallet(settings, wallet_path, password, lambda w: w.broadcast(tx)))
    _echo_json(result)


@app.command("config-init")
def config_init(
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Write a commented config.toml template if none exists."""
    settings = setup_cli(log_level, data_dir)
    config_path = ensure_config_file(settings.get_data_dir())
    typer.echo(f"Config file: {config_path}")


if __name__ == "__main__":
    main()
