# marketsync/cli/main.py
import click

from marketsync.core.logging_config import configure_logging
from marketsync.cli.create_tables import create_tables
from marketsync.cli.recompute import recompute
from marketsync.cli.sync import backfill_fees, sync


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    """Marketplace sync and reconciliation commands"""
    configure_logging(log_level)


cli.add_command(sync)
cli.add_command(backfill_fees)
cli.add_command(recompute)
cli.add_command(create_tables)


if __name__ == "__main__":
    cli()
