# marketsync/cli/recompute.py
import asyncio

import click

from marketsync.core.exceptions import OrderNotFoundError
from marketsync.database import get_session
from marketsync.services.order_service import OrderService


@click.command("recompute")
@click.argument("order_ids", nargs=-1)
@click.option("--sold-since", type=click.DateTime(), default=None,
              help="Recompute every order sold on or after this date")
def recompute(order_ids, sold_since):
    """Re-run the financial pipeline for specific orders or a date range"""
    if not order_ids and sold_since is None:
        raise click.UsageError("Pass at least one ORDER_ID or --sold-since")

    async def _run():
        async with get_session() as db:
            service = OrderService(db)
            for order_id in order_ids:
                try:
                    order = await service.recompute_order(order_id)
                except OrderNotFoundError as e:
                    click.echo(f"{order_id}: {e}")
                    continue
                click.echo(f"{order_id}: earnings={order.earnings} net={order.net} "
                           f"balance={order.balance} profit={order.profit}")
            if sold_since is not None:
                count = await service.recompute_sold_since(sold_since)
                click.echo(f"Recomputed {count} orders sold since {sold_since:%Y-%m-%d}")

    asyncio.run(_run())
