# marketsync/cli/create_tables.py
import asyncio

import click

from marketsync.database import Base, get_engine

# Import all models to ensure they're registered with the Base
from marketsync import models  # noqa: F401


@click.command("create-tables")
def create_tables():
    """Create all database tables directly using SQLAlchemy"""

    async def _create_tables():
        engine = get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())
