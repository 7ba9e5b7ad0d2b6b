from src.data.config import get_settings
from src.data.models import (
    Base,
    Card,
    CardDeck,
    CardDraw,
    ChatMessage,
    Game,
    GameParticipant,
    Ownership,
    PendingAction,
    Tile,
    Transaction,
    Turn,
    User,
)
from src.data.session import (
    get_session,
    get_session_factory,
    init_db,
    close_db,
    session_scope,
    create_tables,
    drop_tables,
    get_engine,
)
from src.data.repository import GameRepository
from src.data.seed import ensure_reference_data_seeded

__all__ = [
    "get_settings",
    "Base",
    "Card",
    "CardDeck",
    "CardDraw",
    "ChatMessage",
    "Game",
    "GameParticipant",
    "Ownership",
    "PendingAction",
    "Tile",
    "Transaction",
    "Turn",
    "User",
    "get_session",
    "get_session_factory",
    "init_db",
    "close_db",
    "session_scope",
    "create_tables",
    "drop_tables",
    "get_engine",
    "GameRepository",
    "ensure_reference_data_seeded",
]
