"""Shared test fixtures for the turn and settlement engine."""

import os
import uuid

# Must be set before DatabaseSettings is first built
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from typing import Iterable, List, Sequence, Tuple  # noqa: E402

import pytest  # noqa: E402

from src.data import (  # noqa: E402
    GameRepository,
    close_db,
    create_tables,
    ensure_reference_data_seeded,
    get_session_factory,
    init_db,
)
from src.data.config import get_settings  # noqa: E402
from src.services import LobbyService  # noqa: E402

MEMORY_URL = "sqlite+aiosqlite://"
COLORS = ("red", "blue", "green", "yellow", "purple", "black")


class ScriptedDice:
    """Dice that return pre-arranged pairs, in order."""

    def __init__(self, rolls: Iterable[Tuple[int, int]] = ()):
        self._values: List[int] = []
        self.push(*rolls)

    def push(self, *rolls: Tuple[int, int]) -> "ScriptedDice":
        for d1, d2 in rolls:
            self._values.extend([d1, d2])
        return self

    def randint(self, a: int, b: int) -> int:
        if not self._values:
            raise AssertionError("ScriptedDice ran out of rolls")
        value = self._values.pop(0)
        assert a <= value <= b
        return value


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def session():
    """Session on a fresh in-memory database with reference data seeded."""
    await init_db(MEMORY_URL)
    await create_tables()
    factory = get_session_factory()
    async with factory() as s:
        await ensure_reference_data_seeded(s)
        await s.commit()
        yield s
    await close_db()


@pytest.fixture
def repo(session):
    return GameRepository(session)


@pytest.fixture
def dice():
    return ScriptedDice()


@pytest.fixture
def make_users(repo):
    async def _make(*names: str):
        return [await repo.create_user(name) for name in names]

    return _make


@pytest.fixture
def make_game(repo, make_users):
    """
    Build a game with n participants seated in order.

    Returns (game, participants) with the game already playing unless
    start=False.
    """

    async def _make(
        n: int = 2,
        *,
        start: bool = True,
        starting_balance: int = 1500,
        max_players: int = 6,
    ):
        users = await make_users(*[f"player{i}" for i in range(1, n + 1)])
        lobby = LobbyService(repo)
        created = await lobby.create_game(
            users[0].id,
            name="Test game",
            token_color=COLORS[0],
            max_players=max_players,
            starting_balance=starting_balance,
        )
        assert created.ok, created.failure
        game = await repo.get_game(uuid.UUID(created.data["game"]["id"]))
        for user, color in zip(users[1:], COLORS[1:]):
            joined = await lobby.join_game(game.id, user.id, color)
            assert joined.ok, joined.failure
        if start:
            started = await lobby.start_game(game.id, users[0].id)
            assert started.ok, started.failure
        participants = await repo.list_participants(game.id)
        return game, participants

    return _make


@pytest.fixture
def place(repo):
    """Move a participant directly, optionally overriding other columns."""

    async def _place(participant, position: int, **fields) -> None:
        participant.position = position
        for key, value in fields.items():
            setattr(participant, key, value)
        await repo.flush()

    return _place


@pytest.fixture
def own(repo):
    """Give a participant the tile at a position, with optional houses."""

    async def _own(game, participant, position: int, houses: int = 0):
        tile = await repo.get_tile_at(position)
        ownership = await repo.create_ownership(game.id, tile.id, participant.id)
        ownership.houses = houses
        await repo.flush()
        return tile, ownership

    return _own


@pytest.fixture
def names():
    """Wire names of a list of realtime events."""

    def _names(events: Sequence) -> List[str]:
        return [e.name.value for e in events]

    return _names
