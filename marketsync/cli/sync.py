# marketsync/cli/sync.py
import asyncio
import json
import logging
from datetime import datetime

import click

from marketsync.core.enums import SyncMode
from marketsync.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@click.command("sync")
@click.option("--mode", type=click.Choice([m.value for m in SyncMode]), default=SyncMode.ALL.value,
              show_default=True, help="Which windows to sync")
@click.option("--account", "account_ids", type=int, multiple=True, help="Seller account id (repeatable)")
def sync(mode, account_ids):
    """Run a sync pass for all active (or the given) seller accounts"""
    start_time = datetime.now()
    logger.info(f"Starting {mode} sync at {start_time}")

    report = asyncio.run(SyncOrchestrator().sync_all(list(account_ids) or None, SyncMode(mode)))

    for result in report.results:
        status = "ok" if result.success else f"FAILED: {result.error}"
        click.echo(
            f"[{result.account_name or result.account_id}] {status} - "
            f"{result.new_orders} new, {result.updated_orders} updated, "
            f"{result.notifiable_changes} notifiable, {result.failed_records} failed"
        )
    click.echo(json.dumps(report.totals(), indent=2))
    logger.info(f"Completed sync in {datetime.now() - start_time} ({report.status})")

    if report.status == "error":
        raise SystemExit(1)


@click.command("backfill-fees")
@click.option("--since", type=click.DateTime(), default=None,
              help="Start of the transaction window (defaults to the last backfill)")
@click.option("--account", "account_ids", type=int, multiple=True, help="Seller account id (repeatable)")
def backfill_fees(since, account_ids):
    """Pull ad fees from the Finances API and apply them to stored orders"""
    summary = asyncio.run(SyncOrchestrator().backfill_fees(list(account_ids) or None, since))
    click.echo(json.dumps(summary, indent=2, default=str))
    if summary["status"] == "error":
        raise SystemExit(1)
