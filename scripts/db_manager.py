#!/usr/bin/env python3
"""
Database management utility script.

Usage:
    python scripts/db_manager.py init     # Create tables and seed the board and decks
    python scripts/db_manager.py seed     # Seed reference data only
    python scripts/db_manager.py reset    # Drop and recreate tables (DEV ONLY!)
    python scripts/db_manager.py test     # Test connection
    python scripts/db_manager.py stats    # Show ledger statistics
"""

import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root))

from sqlalchemy import func, select, text  # noqa: E402

from src.data import (  # noqa: E402
    Card,
    ChatMessage,
    Game,
    GameParticipant,
    PendingAction,
    Tile,
    Transaction,
    Turn,
    close_db,
    create_tables,
    drop_tables,
    ensure_reference_data_seeded,
    get_settings,
    init_db,
    session_scope,
)
from src.logging_config import configure_logging  # noqa: E402


async def _seed() -> None:
    async with session_scope() as session:
        await ensure_reference_data_seeded(session)


async def init():
    """Create tables and seed reference data."""
    print("Initializing database...")
    await init_db()
    print("Creating tables (Alembic is recommended for production)...")
    await create_tables()
    await _seed()
    print("Tables created, board and decks seeded")
    await close_db()


async def seed():
    """Insert any missing tiles and cards."""
    await init_db()
    await _seed()
    print("Reference data seeded")
    await close_db()


async def reset():
    """Drop all tables and recreate them (DESTRUCTIVE!)."""
    print("WARNING: This will DELETE ALL DATA!")
    response = input("Are you sure? Type 'yes' to continue: ")

    if response.lower() != "yes":
        print("Aborted")
        return

    await init_db()
    print("Dropping all tables...")
    await drop_tables()
    print("Recreating tables...")
    await create_tables()
    await _seed()
    print("Done")
    await close_db()


async def test():
    """Test database connection."""
    print("Testing database connection...")
    await init_db()
    try:
        async with session_scope() as session:
            await session.execute(text("SELECT 1"))
            tiles = (await session.execute(select(func.count()).select_from(Tile))).scalar()
            cards = (await session.execute(select(func.count()).select_from(Card))).scalar()
        print(f"Connected to {get_settings().database_url.split('@')[-1]}")
        print(f"Tiles seeded: {tiles}/40, cards seeded: {cards}")
    except Exception as e:
        print(f"Connection failed: {e}")
        sys.exit(1)
    finally:
        await close_db()


async def stats():
    """Show ledger statistics."""
    await init_db()

    async with session_scope() as session:

        async def count(model, *where) -> int:
            stmt = select(func.count()).select_from(model)
            if where:
                stmt = stmt.where(*where)
            return (await session.execute(stmt)).scalar() or 0

        print("Database Statistics\n")
        for status in ("waiting", "playing", "ended"):
            print(f"Games {status}: {await count(Game, Game.status == status)}")
        print(f"Participants: {await count(GameParticipant)}")
        print(f"Bankrupt participants: {await count(GameParticipant, GameParticipant.is_bankrupt.is_(True))}")
        print(f"Turns rolled: {await count(Turn)}")
        print(f"Open pending actions: {await count(PendingAction, PendingAction.status == 'pending')}")
        print(f"Chat messages: {await count(ChatMessage)}")

        result = await session.execute(
            select(Transaction.transaction_type, func.count(), func.sum(Transaction.amount))
            .group_by(Transaction.transaction_type)
            .order_by(func.count().desc())
        )
        rows = result.all()
        if rows:
            print("\nTransactions by type:")
            for transaction_type, n, total in rows:
                print(f"   - {transaction_type}: {n} (${total or 0})")

        result = await session.execute(
            select(Game.game_code, Game.status, Game.created_at)
            .order_by(Game.created_at.desc())
            .limit(5)
        )
        recent = result.all()
        if recent:
            print("\nRecent Games:")
            for code, status, created_at in recent:
                print(f"   - {code}: {status} - {created_at.strftime('%Y-%m-%d %H:%M:%S')}")

    await close_db()


async def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command = sys.argv[1].lower()

    commands = {
        "init": init,
        "seed": seed,
        "reset": reset,
        "test": test,
        "stats": stats,
    }

    if command not in commands:
        print(f"Unknown command: {command}")
        print(__doc__)
        sys.exit(1)

    configure_logging("WARNING")
    await commands[command]()


if __name__ == "__main__":
    asyncio.run(main())
