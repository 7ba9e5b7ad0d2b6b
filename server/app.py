from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.events import game_room, private_options, user_room
from src.core.exceptions import (
    GameCodeExhaustedError,
    GameNotFoundError,
    MalformedPayloadError,
    NotParticipantError,
    ReferenceDataError,
)
from src.core.game_math import DiceSource
from src.core.results import ActionResult, Failure
from src.data import (
    GameRepository,
    close_db,
    create_tables,
    ensure_reference_data_seeded,
    init_db,
    session_scope,
)
from src.logging_config import configure_logging
from src.services import (
    ChatService,
    GameLockRegistry,
    LobbyService,
    SettlementService,
    TurnService,
)
from src.services.game_state import build_game_state_for_user
from src.services.options import build_options_payload
from src.settings import get_server_settings

from .deps import get_current_user_id, get_dice, get_dispatcher, get_repo, parse_uuid
from .dispatcher import CommandDispatcher
from .realtime import RealtimeGateway
from .schemas import (
    ActionResponse,
    ChatMessageRequest,
    CreateGameRequest,
    GameListResponse,
    JoinByCodeRequest,
    JoinGameRequest,
    LobbyGame,
    PendingActionRequest,
    PendingPropertyRequest,
    PropertyRequest,
    RegisterUserRequest,
    RollRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

FAILURE_STATUS: Dict[Failure, int] = {
    Failure.NOT_FOUND: 404,
    Failure.CODE_NOT_FOUND: 404,
    Failure.FORBIDDEN: 403,
    Failure.NOT_PARTICIPANT: 403,
    Failure.NOT_YOUR_TURN: 403,
    Failure.INSUFFICIENT: 402,
    Failure.INVALID_COLOR: 400,
    Failure.INVALID_MAX_PLAYERS: 400,
    Failure.EMPTY_MESSAGE: 400,
    Failure.MESSAGE_TOO_LONG: 400,
    Failure.CONFLICTING_JAIL_OPTIONS: 400,
    Failure.BAD_TILE: 400,
    Failure.BAD_STATE: 500,
    Failure.BAD_PAYLOAD: 500,
}
# Everything else is a conflict with the current game state
DEFAULT_FAILURE_STATUS = 409


def respond(result: ActionResult) -> ActionResponse:
    """Turn an ActionResult into a response body or an HTTP error."""
    if result.ok:
        return ActionResponse(data=result.data)
    status = FAILURE_STATUS.get(result.failure, DEFAULT_FAILURE_STATUS)
    raise HTTPException(status_code=status, detail={"error": result.failure.value, **result.data})


async def _refuse(websocket: WebSocket, code: int) -> None:
    """Complete the handshake only to close with an application close code."""
    await websocket.accept()
    await websocket.close(code=code)


def create_app(
    database_url: Optional[str] = None,
    create_schema: bool = False,
    rng: Optional[DiceSource] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        database_url: Override DATABASE_URL (tests use in-memory SQLite)
        create_schema: Create tables at start-up instead of relying on Alembic
        rng: Dice source for every roll; defaults to SystemRandom
    """
    settings = get_server_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        logger.info("Starting Monopoly Live server")
        await init_db(database_url)
        if create_schema:
            await create_tables()
        async with session_scope() as session:
            await ensure_reference_data_seeded(session)

        gateway = RealtimeGateway(queue_size=settings.ws_queue_size)
        app.state.gateway = gateway
        app.state.locks = GameLockRegistry()
        app.state.dispatcher = CommandDispatcher(gateway, app.state.locks)
        app.state.dice = rng
        logger.info("Server ready")

        yield

        logger.info("Shutting down server")
        await close_db()

    app = FastAPI(title="Monopoly Live Server", version="0.3.0", lifespan=lifespan)

    if settings.cors_origin_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GameCodeExhaustedError)
    async def code_exhausted(request: Request, exc: GameCodeExhaustedError):
        logger.error(f"Game code generation exhausted: {exc}")
        return JSONResponse(status_code=503, content={"detail": {"error": "code_exhausted"}})

    @app.exception_handler(ReferenceDataError)
    async def reference_data(request: Request, exc: ReferenceDataError):
        logger.error(f"Reference data problem: {exc}")
        return JSONResponse(status_code=500, content={"detail": {"error": "reference_data"}})


def _register_routes(app: FastAPI) -> None:
    # ---- Health & Users ----

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/users", response_model=UserResponse, status_code=201)
    async def register_user(
        req: RegisterUserRequest,
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            None, lambda repo: LobbyService(repo).register_user(req.display_name)
        )
        return UserResponse(**respond(result).data)

    # ---- Lobby ----

    @app.get("/api/games", response_model=GameListResponse)
    async def list_games(
        limit: int = 100,
        offset: int = 0,
        status: Optional[str] = None,
        user_id: uuid.UUID = Depends(get_current_user_id),
        repo: GameRepository = Depends(get_repo),
    ):
        games = await LobbyService(repo).list_games(
            user_id=user_id, status=status, limit=limit, offset=offset
        )
        return GameListResponse(
            games=[LobbyGame(**g) for g in games], limit=limit, offset=offset
        )

    @app.post("/api/games", response_model=ActionResponse, status_code=201)
    async def create_game(
        req: CreateGameRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            None,
            lambda repo: LobbyService(repo).create_game(
                user_id,
                name=req.name,
                token_color=req.token_color,
                max_players=req.max_players,
                starting_balance=req.starting_balance,
            ),
        )
        return respond(result)

    @app.delete("/api/games/{game_id}", response_model=ActionResponse)
    async def delete_game(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: LobbyService(repo).delete_game(game_id, user_id)
        )
        return respond(result)

    @app.post("/api/games/join-by-code", response_model=ActionResponse)
    async def join_by_code(
        req: JoinByCodeRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        # The lock is keyed by game id, so resolve the code before taking it
        async with session_scope() as session:
            game = await GameRepository(session).get_game_by_code(req.game_code.strip())
        result = await dispatcher.execute(
            game.id if game else None,
            lambda repo: LobbyService(repo).join_by_code(req.game_code, user_id, req.token_color),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/join", response_model=ActionResponse)
    async def join_game(
        game_id: uuid.UUID,
        req: JoinGameRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: LobbyService(repo).join_game(game_id, user_id, req.token_color)
        )
        return respond(result)

    @app.post("/api/games/{game_id}/join-auto", response_model=ActionResponse)
    async def join_auto(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: LobbyService(repo).join_auto(game_id, user_id)
        )
        return respond(result)

    @app.post("/api/games/{game_id}/start", response_model=ActionResponse)
    async def start_game(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: LobbyService(repo).start_game(game_id, user_id)
        )
        return respond(result)

    @app.get("/api/games/{game_id}/state")
    async def get_state(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        repo: GameRepository = Depends(get_repo),
    ) -> Dict[str, Any]:
        try:
            return await build_game_state_for_user(repo, game_id, user_id)
        except GameNotFoundError:
            raise HTTPException(status_code=404, detail={"error": Failure.NOT_FOUND.value})
        except NotParticipantError:
            raise HTTPException(status_code=403, detail={"error": Failure.NOT_PARTICIPANT.value})
        except MalformedPayloadError as exc:
            logger.error(f"Unreadable pending action in game {game_id}: {exc}")
            raise HTTPException(status_code=500, detail={"error": Failure.BAD_PAYLOAD.value})

    # ---- Turn ----

    @app.post("/api/games/{game_id}/roll", response_model=ActionResponse)
    async def roll(
        game_id: uuid.UUID,
        req: Optional[RollRequest] = None,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
        dice: Optional[DiceSource] = Depends(get_dice),
    ):
        req = req or RollRequest()
        result = await dispatcher.execute(
            game_id,
            lambda repo: TurnService(repo, dice).roll(
                game_id,
                user_id,
                pay_to_leave_jail=req.pay_to_leave_jail,
                use_goojf=req.use_goojf,
            ),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/end-turn", response_model=ActionResponse)
    async def end_turn(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: SettlementService(repo).end_turn(game_id, user_id)
        )
        return respond(result)

    # ---- Settlement ----

    @app.post("/api/games/{game_id}/buy", response_model=ActionResponse)
    async def buy_property(
        game_id: uuid.UUID,
        req: PendingPropertyRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).buy_property(
                game_id, user_id, req.pending_action_id, req.property_id
            ),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/pay-rent", response_model=ActionResponse)
    async def pay_rent(
        game_id: uuid.UUID,
        req: PendingPropertyRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).pay_rent(
                game_id, user_id, req.pending_action_id, req.property_id
            ),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/pay-debt", response_model=ActionResponse)
    async def pay_debt(
        game_id: uuid.UUID,
        req: PendingActionRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).pay_bank_debt(
                game_id, user_id, req.pending_action_id
            ),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/bankruptcy", response_model=ActionResponse)
    async def declare_bankruptcy(
        game_id: uuid.UUID,
        req: PendingActionRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).declare_bankruptcy(
                game_id, user_id, req.pending_action_id
            ),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/sell", response_model=ActionResponse)
    async def sell_property(
        game_id: uuid.UUID,
        req: PropertyRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).sell_property(game_id, user_id, req.property_id),
        )
        return respond(result)

    @app.post("/api/games/{game_id}/upgrade", response_model=ActionResponse)
    async def upgrade_property(
        game_id: uuid.UUID,
        req: PropertyRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id,
            lambda repo: SettlementService(repo).upgrade_property(
                game_id, user_id, req.property_id
            ),
        )
        return respond(result)

    # ---- Chat ----

    @app.get("/api/games/{game_id}/chat", response_model=ActionResponse)
    async def list_chat(
        game_id: uuid.UUID,
        user_id: uuid.UUID = Depends(get_current_user_id),
        repo: GameRepository = Depends(get_repo),
    ):
        return respond(await ChatService(repo).list_messages(game_id, user_id))

    @app.post("/api/games/{game_id}/chat", response_model=ActionResponse, status_code=201)
    async def post_chat(
        game_id: uuid.UUID,
        req: ChatMessageRequest,
        user_id: uuid.UUID = Depends(get_current_user_id),
        dispatcher: CommandDispatcher = Depends(get_dispatcher),
    ):
        result = await dispatcher.execute(
            game_id, lambda repo: ChatService(repo).post_message(game_id, user_id, req.message)
        )
        return respond(result)

    # ---- Realtime ----

    @app.websocket("/ws")
    async def ws_connect(websocket: WebSocket):
        """
        Realtime channel.

        Query params: user_id (required) and game_id (optional). The socket
        always joins the user's private room; with game_id it also joins the
        game room, and any open pending action's options are sent at once
        so a reconnecting client does not lose its prompt. Rooms are joined
        before the handshake completes so no event is missed in between.
        """
        user_id = parse_uuid(websocket.query_params.get("user_id"))
        game_id = parse_uuid(websocket.query_params.get("game_id"))
        if websocket.query_params.get("game_id") and game_id is None:
            await _refuse(websocket, 4400)
            return

        initial: Optional[Dict[str, Any]] = None
        async with session_scope() as session:
            repo = GameRepository(session)
            if user_id is None or await repo.get_user(user_id) is None:
                await _refuse(websocket, 4401)
                return
            if game_id is not None:
                participant = await repo.get_participant_for_user(game_id, user_id)
                if participant is None:
                    await _refuse(websocket, 4403)
                    return
                pending = await repo.get_open_pending(game_id, participant.id)
                if pending is not None:
                    try:
                        initial = await build_options_payload(repo, participant, pending)
                    except MalformedPayloadError as exc:
                        logger.warning(f"Skipping options on connect: {exc}")

        gateway: RealtimeGateway = websocket.app.state.gateway
        rooms = [user_room(user_id)] + ([game_room(game_id)] if game_id else [])
        sub = gateway.subscribe(*rooms)
        if initial is not None:
            sub.queue.put_nowait(private_options(user_id, initial).to_message())
        await websocket.accept()

        async def sender():
            while True:
                msg = await sub.get()
                if msg is None:
                    await websocket.close(code=4408)
                    return
                await websocket.send_json(msg)

        async def heartbeat():
            interval = get_server_settings().ws_heartbeat_seconds
            while True:
                await asyncio.sleep(interval)
                await websocket.send_json({"event": "heartbeat", "payload": {}})

        async def receiver():
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass

        # Whichever loop stops first ends the connection
        tasks = [asyncio.create_task(loop()) for loop in (receiver, sender, heartbeat)]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(f"WebSocket for user {user_id} failed: {task.exception()!r}")
        finally:
            gateway.unsubscribe(sub)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    server_settings = get_server_settings()
    uvicorn.run(
        "server.app:app",
        host=server_settings.server_host,
        port=server_settings.server_port,
        reload=True,
    )
