"""
Settlement actions.

Discrete mutations a participant performs to resolve an obligation or
manage their holdings: buy, pay rent, pay a bank debt, declare
bankruptcy, sell, upgrade and end the turn. Each runs inside the
caller's transaction against row-locked game and participant state and
returns an ActionResult; a failure never writes anything.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from src.core.board import MAX_HOUSES, PURCHASABLE_TYPES, TileType
from src.core.events import (
    RealtimeEvent,
    balance_update,
    game_ended,
    private_options,
    state_update,
    turn_changed,
)
from src.core.exceptions import MalformedPayloadError
from src.core.game_math import sale_value, upgrade_cost_for_group
from src.core.pending import (
    BuyPropertyPayload,
    PayBankDebtPayload,
    PayRentPayload,
    PendingActionType,
    PendingPayload,
    PendingStatus,
    parse_pending_payload,
)
from src.core.results import ActionResult, Failure
from src.data.models import Game, GameParticipant, PendingAction
from src.data.repository import GameRepository
from src.services import options as opts
from src.services.game_state import build_public_game_state
from src.services.progression import (
    bankrupt_to_bank,
    game_ended_payload,
    settle_after_mutation,
)
from src.services.rotation import active_participants, current_participant

logger = logging.getLogger(__name__)


@dataclass
class Actor:
    """The locked game and the caller's participant row."""

    game: Game
    participants: List[GameParticipant]
    participant: GameParticipant


class SettlementService:
    """Resolves pending actions and applies holding changes."""

    def __init__(self, repo: GameRepository):
        self.repo = repo

    # ---- Shared preconditions ----

    async def _load_actor(
        self, game_id: uuid.UUID, user_id: uuid.UUID
    ) -> Union[Actor, ActionResult]:
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.status != "playing":
            return ActionResult.fail(Failure.BAD_PHASE)

        participants = await self.repo.lock_participants(game_id)
        participant = next((p for p in participants if p.user_id == user_id), None)
        if participant is None:
            return ActionResult.fail(Failure.NOT_PARTICIPANT)
        return Actor(game=game, participants=participants, participant=participant)

    async def _load_pending(
        self,
        actor: Actor,
        pending_action_id: uuid.UUID,
        accepted: Tuple[PendingActionType, ...],
    ) -> Union[Tuple[PendingAction, PendingPayload], ActionResult]:
        """
        Lock the caller's open pending action and validate its payload.

        Returns:
            (row, payload), or a failed ActionResult
        """
        pending = await self.repo.lock_pending(pending_action_id)
        if (
            pending is None
            or pending.game_id != actor.game.id
            or pending.participant_id != actor.participant.id
            or pending.status != PendingStatus.PENDING.value
        ):
            return ActionResult.fail(Failure.NO_PENDING)
        if pending.action_type not in {t.value for t in accepted}:
            return ActionResult.fail(Failure.WRONG_PENDING)

        try:
            payload = parse_pending_payload(pending.action_type, pending.payload_json)
        except MalformedPayloadError as exc:
            logger.error(f"Pending action {pending.id} is unreadable: {exc}")
            return ActionResult.fail(Failure.BAD_PAYLOAD)
        return pending, payload

    @staticmethod
    def _wrong_payload(pending: PendingAction) -> ActionResult:
        logger.error(f"Pending action {pending.id} parsed to the wrong payload kind")
        return ActionResult.fail(Failure.BAD_PAYLOAD)

    async def _last_turn_id(self, actor: Actor) -> Optional[uuid.UUID]:
        turn = await self.repo.last_turn_for(actor.game.id, actor.participant.id)
        return turn.id if turn else None

    # ---- Pending resolution ----

    async def buy_property(
        self,
        game_id: uuid.UUID,
        user_id: uuid.UUID,
        pending_action_id: uuid.UUID,
        property_id: uuid.UUID,
    ) -> ActionResult:
        """
        Buy the tile offered by a buy_property pending action.

        Args:
            game_id: Game to act on
            user_id: Caller
            pending_action_id: The open buy_property action
            property_id: Tile the caller means to buy; must match the offer

        Returns:
            ActionResult with the new ownership and balance
        """
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        loaded = await self._load_pending(actor, pending_action_id, (PendingActionType.BUY_PROPERTY,))
        if isinstance(loaded, ActionResult):
            return loaded
        pending, payload = loaded
        if not isinstance(payload, BuyPropertyPayload):
            return self._wrong_payload(pending)

        if payload.tile_id != property_id:
            return ActionResult.fail(Failure.MISMATCH)

        tile = await self.repo.get_tile(property_id)
        if tile is None or TileType(tile.tile_type) not in PURCHASABLE_TYPES:
            return ActionResult.fail(Failure.BAD_TILE)
        if await self.repo.lock_ownership(game_id, tile.id) is not None:
            return ActionResult.fail(Failure.ALREADY_OWNED)

        p = actor.participant
        if p.cash < payload.cost:
            return ActionResult.fail(Failure.INSUFFICIENT, required=payload.cost, cash=p.cash)

        p.cash -= payload.cost
        ownership = await self.repo.create_ownership(game_id, tile.id, p.id)
        await self.repo.record_transaction(
            game_id=game_id,
            from_participant_id=p.id,
            amount=payload.cost,
            transaction_type="purchase",
            description=f"Purchased {tile.name}",
            turn_id=await self._last_turn_id(actor),
        )
        await self.repo.set_pending_status(pending, PendingStatus.COMPLETED)
        logger.info(f"Participant {p.id} bought {tile.name} for ${payload.cost}")

        settlement = await settle_after_mutation(self.repo, actor.game, previous_player_id=p.id)
        return ActionResult.success(
            {
                "ownership_id": str(ownership.id),
                "tile_id": str(tile.id),
                "cost": payload.cost,
                "balance": p.cash,
            },
            settlement.events(game_id, balance_update(p.user_id, game_id, p.id, p.cash)),
        )

    async def pay_rent(
        self,
        game_id: uuid.UUID,
        user_id: uuid.UUID,
        pending_action_id: uuid.UUID,
        property_id: uuid.UUID,
    ) -> ActionResult:
        """
        Pay the rent recorded in a pay_rent pending action.

        Insufficient cash leaves the action open; the payer sells and
        retries, or declares bankruptcy once nothing is left to sell.
        """
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        loaded = await self._load_pending(actor, pending_action_id, (PendingActionType.PAY_RENT,))
        if isinstance(loaded, ActionResult):
            return loaded
        pending, payload = loaded
        if not isinstance(payload, PayRentPayload):
            return self._wrong_payload(pending)

        if payload.tile_id != property_id:
            return ActionResult.fail(Failure.MISMATCH)

        owner = next((o for o in actor.participants if o.id == payload.owner_participant_id), None)
        if owner is None:
            logger.error(f"Pending rent {pending.id} names unknown owner {payload.owner_participant_id}")
            return ActionResult.fail(Failure.BAD_PAYLOAD)

        payer = actor.participant
        if payer.cash < payload.amount:
            return ActionResult.fail(Failure.INSUFFICIENT, required=payload.amount, cash=payer.cash)

        # A bankrupt owner keeps nothing; the rent goes to the bank.
        recipient = None if owner.is_bankrupt else owner
        payer.cash -= payload.amount
        if recipient is not None:
            recipient.cash += payload.amount
        await self.repo.record_transaction(
            game_id=game_id,
            from_participant_id=payer.id,
            to_participant_id=recipient.id if recipient else None,
            amount=payload.amount,
            transaction_type="rent",
            description="Paid rent",
            turn_id=await self._last_turn_id(actor),
        )
        await self.repo.set_pending_status(pending, PendingStatus.COMPLETED)

        settlement = await settle_after_mutation(self.repo, actor.game, previous_player_id=payer.id)
        private: List[RealtimeEvent] = [balance_update(payer.user_id, game_id, payer.id, payer.cash)]
        if recipient is not None:
            private.append(balance_update(recipient.user_id, game_id, recipient.id, recipient.cash))
        return ActionResult.success(
            {
                "amount": payload.amount,
                "balance": payer.cash,
                "owner_participant_id": str(owner.id),
                "owner_balance": owner.cash,
                "ended": settlement.ended,
            },
            settlement.events(game_id, *private),
        )

    async def pay_bank_debt(
        self, game_id: uuid.UUID, user_id: uuid.UUID, pending_action_id: uuid.UUID
    ) -> ActionResult:
        """Settle a tax or card debt recorded in a pay_bank_debt pending action."""
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        loaded = await self._load_pending(actor, pending_action_id, (PendingActionType.PAY_BANK_DEBT,))
        if isinstance(loaded, ActionResult):
            return loaded
        pending, payload = loaded
        if not isinstance(payload, PayBankDebtPayload):
            return self._wrong_payload(pending)

        p = actor.participant
        if p.cash < payload.amount:
            return ActionResult.fail(Failure.INSUFFICIENT, required=payload.amount, cash=p.cash)

        p.cash -= payload.amount
        await self.repo.record_transaction(
            game_id=game_id,
            from_participant_id=p.id,
            amount=payload.amount,
            transaction_type=payload.transaction_type,
            description=payload.description,
            turn_id=payload.turn_id,
        )
        await self.repo.set_pending_status(pending, PendingStatus.COMPLETED)

        settlement = await settle_after_mutation(self.repo, actor.game, previous_player_id=p.id)
        return ActionResult.success(
            {"amount": payload.amount, "balance": p.cash, "ended": settlement.ended},
            settlement.events(game_id, balance_update(p.user_id, game_id, p.id, p.cash)),
        )

    async def declare_bankruptcy(
        self, game_id: uuid.UUID, user_id: uuid.UUID, pending_action_id: uuid.UUID
    ) -> ActionResult:
        """
        Give up against an unpayable rent or bank debt.

        Only accepted once the participant owns nothing; everything they
        hold goes back to the bank.
        """
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        loaded = await self._load_pending(
            actor,
            pending_action_id,
            (PendingActionType.PAY_RENT, PendingActionType.PAY_BANK_DEBT),
        )
        if isinstance(loaded, ActionResult):
            return loaded
        pending, payload = loaded

        p = actor.participant
        if await self.repo.count_owned(game_id, p.id) > 0:
            return ActionResult.fail(Failure.MUST_SELL_PROPERTIES)

        was_current = current_participant(actor.game, actor.participants) is p
        turn_id = payload.turn_id if isinstance(payload, PayBankDebtPayload) else None

        await self.repo.set_pending_status(pending, PendingStatus.COMPLETED)
        surrendered = await bankrupt_to_bank(
            self.repo, p, reason="Declared bankruptcy", turn_id=turn_id
        )

        settlement = await settle_after_mutation(
            self.repo,
            actor.game,
            notify_next_turn=was_current,
            previous_player_id=p.id,
        )
        return ActionResult.success(
            {
                "surrendered": surrendered,
                "ended": settlement.ended,
                "winner_participant_id": (
                    str(settlement.winner_participant_id)
                    if settlement.winner_participant_id
                    else None
                ),
                "next_player_id": (
                    str(settlement.next_participant.id) if settlement.next_participant else None
                ),
            },
            settlement.events(game_id, balance_update(p.user_id, game_id, p.id, p.cash)),
        )

    # ---- Holdings ----

    async def sell_property(
        self, game_id: uuid.UUID, user_id: uuid.UUID, property_id: uuid.UUID
    ) -> ActionResult:
        """
        Sell an owned tile back to the bank.

        Allowed at any point of the game, not only on the seller's turn,
        so an indebted participant can raise cash before paying.
        """
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        p = actor.participant
        if p.is_bankrupt:
            return ActionResult.fail(Failure.BANKRUPT)

        tile = await self.repo.get_tile(property_id)
        if tile is None:
            return ActionResult.fail(Failure.BAD_TILE)
        ownership = await self.repo.lock_ownership(game_id, tile.id)
        if ownership is None or ownership.participant_id != p.id:
            return ActionResult.fail(Failure.NOT_OWNER)
        if not tile.purchase_price or tile.purchase_price <= 0:
            return ActionResult.fail(Failure.NOT_SELLABLE)

        value = sale_value(tile.purchase_price, tile.property_group, ownership.houses)
        await self.repo.delete_ownership(ownership)
        p.cash += value
        await self.repo.record_transaction(
            game_id=game_id,
            to_participant_id=p.id,
            amount=value,
            transaction_type="sale",
            description=f"Sold {tile.name}",
            turn_id=await self._last_turn_id(actor),
        )
        logger.info(f"Participant {p.id} sold {tile.name} for ${value}")

        await self.repo.flush()
        private: List[RealtimeEvent] = [balance_update(p.user_id, game_id, p.id, p.cash)]
        options = None
        pending = await self.repo.get_open_pending(game_id, p.id)
        if pending is not None:
            try:
                options = await opts.build_options_payload(self.repo, p, pending)
            except MalformedPayloadError as exc:
                logger.error(f"Pending action {pending.id} is unreadable: {exc}")
                return ActionResult.fail(Failure.BAD_PAYLOAD)
            private.append(private_options(p.user_id, options))

        state = await build_public_game_state(self.repo, game_id)
        return ActionResult.success(
            {"tile_id": str(tile.id), "sale_value": value, "balance": p.cash, "options": options},
            [state_update(game_id, state), *private],
        )

    async def upgrade_property(
        self, game_id: uuid.UUID, user_id: uuid.UUID, property_id: uuid.UUID
    ) -> ActionResult:
        """Build one house, or a hotel on top of four houses, on the caller's turn."""
        actor = await self._load_actor(game_id, user_id)
        if isinstance(actor, ActionResult):
            return actor
        p = actor.participant
        if current_participant(actor.game, actor.participants) is not p:
            return ActionResult.fail(Failure.NOT_YOUR_TURN)
        if await self.repo.get_open_pending(game_id, p.id) is not None:
            return ActionResult.fail(Failure.HAS_PENDING)

        tile = await self.repo.get_tile(property_id)
        if tile is None:
            return ActionResult.fail(Failure.BAD_TILE)
        ownership = await self.repo.lock_ownership(game_id, tile.id)
        if ownership is None or ownership.participant_id != p.id:
            return ActionResult.fail(Failure.NOT_OWNER)

        cost = upgrade_cost_for_group(tile.property_group)
        if TileType(tile.tile_type) != TileType.PROPERTY or ownership.is_mortgaged or cost <= 0:
            return ActionResult.fail(Failure.NOT_UPGRADABLE)
        if ownership.hotels > 0:
            return ActionResult.fail(Failure.MAX_LEVEL)
        if p.cash < cost:
            return ActionResult.fail(Failure.INSUFFICIENT, required=cost, cash=p.cash)

        if ownership.houses < MAX_HOUSES:
            ownership.houses += 1
            description = f"Built house #{ownership.houses} on {tile.name}"
        else:
            ownership.houses = 0
            ownership.hotels = 1
            description = f"Built a hotel on {tile.name}"

        p.cash -= cost
        await self.repo.record_transaction(
            game_id=game_id,
            from_participant_id=p.id,
            amount=cost,
            transaction_type="upgrade_property",
            description=description,
            turn_id=await self._last_turn_id(actor),
        )
        await self.repo.flush()

        state = await build_public_game_state(self.repo, game_id)
        return ActionResult.success(
            {
                "tile_id": str(tile.id),
                "houses": ownership.houses,
                "hotels": ownership.hotels,
                "cost": cost,
                "balance": p.cash,
            },
            [state_update(game_id, state), balance_update(p.user_id, game_id, p.id, p.cash)],
        )

    # ---- Turn hand-off ----

    async def end_turn(self, game_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """
        Pass the turn to the next active participant.

        An unanswered purchase offer is cancelled; any other open pending
        action blocks the hand-off. With a single active participant left
        the game ends instead.
        """
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.status != "playing":
            return ActionResult.fail(Failure.BAD_PHASE)

        participants = await self.repo.lock_participants(game_id)
        active = active_participants(participants)
        if not active:
            logger.error(f"Game {game_id} is playing with no active participants")
            return ActionResult.fail(Failure.BAD_STATE)

        index = game.turn_index % len(active)
        current = active[index]
        if current.user_id != user_id:
            return ActionResult.fail(Failure.NOT_YOUR_TURN)

        pending = await self.repo.get_open_pending(game_id, current.id)
        if pending is not None:
            if pending.action_type != PendingActionType.BUY_PROPERTY.value:
                return ActionResult.fail(Failure.HAS_PENDING)
            await self.repo.set_pending_status(pending, PendingStatus.CANCELLED)

        if len(active) == 1:
            await self.repo.mark_ended(game)
            payload = game_ended_payload(game, current.id, participants)
            state = await build_public_game_state(self.repo, game_id)
            return ActionResult.success(
                {"ended": True, "winner_participant_id": str(current.id)},
                [state_update(game_id, state), game_ended(game_id, payload)],
            )

        next_index = (index + 1) % len(active)
        nxt = active[next_index]
        await self.repo.set_turn_index(game, next_index)
        state = await build_public_game_state(self.repo, game_id)
        logger.debug(f"Game {game.game_code}: turn passes to {nxt.token_color}")

        return ActionResult.success(
            {"ended": False, "next_player_id": str(nxt.id), "turn_index": next_index},
            [
                state_update(game_id, state),
                turn_changed(game_id, nxt.id, current.id, state["turn_number"]),
                private_options(nxt.user_id, opts.start_turn_options(game_id, nxt.id)),
            ],
        )
