"""Command line entry points"""

from pathlib import Path

import click

from .config import load_config, setup_logging
from .expiry import ExpiryReconciler
from .storage import PasswordStore, RecordStore
from .timeservice import HOUR_MS, TimeService


@click.group()
def cli():
    """cloudclip clipboard sharing service"""


@cli.command()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), default=None,
              help="Path to config.yaml")
def serve(config_file):
    """Run the HTTP server."""
    from .server import main
    main(config_file)


@cli.command()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), default=None,
              help="Path to config.yaml")
@click.option("--hours", type=float, default=0, show_default=True,
              help="Only remove entries expired for longer than this")
def cleanup(config_file, hours):
    """Remove expired entries and their passwords from the data directory."""
    config = load_config(Path(config_file) if config_file else None)
    setup_logging(config.get("log_file"))

    time_service = TimeService(config.get("utc_offset_hours", 8))
    data_dir = Path(config["data_dir"])
    records = RecordStore(data_dir)
    passwords = PasswordStore(data_dir, config["password_salt"])
    reconciler = ExpiryReconciler(records, passwords, time_service)

    now = time_service.now()
    total = len(records.get_all())
    click.echo(f"Current civil time: {time_service.format(now)}")
    click.echo(f"Data directory: {data_dir}")

    deleted = reconciler.sweep(now, grace_ms=int(hours * HOUR_MS))
    for entry_id in deleted:
        click.echo(f"Removed expired entry: ID={entry_id}")
    click.echo(f"Cleaned {len(deleted)}/{total} entries")


if __name__ == "__main__":
    cli()
