"""
Turn state machine.

Processes one roll end to end for the participant whose turn it is:
dice, jail resolution, movement, card and tax effects, and the pending
action the landing tile calls for. Everything runs inside the caller's
transaction with the game and participant rows locked.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.core.board import (
    CARD_TYPES,
    JAIL_FEE,
    JAIL_POSITION,
    PASS_GO_SALARY,
    PURCHASABLE_TYPES,
    TileType,
)
from src.core.cards import CardAction, DeckType, deck_label
from src.core.events import RealtimeEvent, balance_update, private_options
from src.core.exceptions import ReferenceDataError
from src.core.game_math import DiceSource, advance, compute_rent, roll_dice, tax_for_tile_name
from src.core.pending import (
    BuyPropertyPayload,
    PayBankDebtPayload,
    PayRentPayload,
    PendingPayload,
)
from src.core.results import ActionResult, Failure
from src.data.models import Game, GameParticipant, PendingAction, Tile, Turn
from src.data.repository import GameRepository
from src.services import options as opts
from src.services.progression import bankrupt_to_bank, settle_after_mutation
from src.services.rotation import current_participant

logger = logging.getLogger(__name__)


@dataclass
class RollContext:
    """Working state of a single roll."""

    game: Game
    participant: GameParticipant
    dice: Tuple[int, int]
    previous_position: int
    turn: Turn
    messages: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    pending: Optional[PendingAction] = None
    payload: Optional[PendingPayload] = None
    options: Optional[Dict[str, Any]] = None

    @property
    def total(self) -> int:
        return self.dice[0] + self.dice[1]

    @property
    def is_double(self) -> bool:
        return self.dice[0] == self.dice[1]

    def note(self, text: str) -> None:
        """Record text for both the roller and the turn history."""
        self.messages.append(text)
        self.notes.append(text)


def _release_from_jail(participant: GameParticipant) -> None:
    participant.in_jail = False
    participant.jail_turns = 0


def _send_to_jail(participant: GameParticipant) -> None:
    participant.position = JAIL_POSITION
    participant.in_jail = True
    participant.jail_turns = 0


class TurnService:
    """Runs the roll command."""

    def __init__(self, repo: GameRepository, rng: Optional[DiceSource] = None):
        self.repo = repo
        self.rng = rng or random.SystemRandom()

    async def roll(
        self,
        game_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        pay_to_leave_jail: bool = False,
        use_goojf: bool = False,
    ) -> ActionResult:
        """
        Roll for the current participant and resolve where they land.

        Args:
            game_id: Game to act on
            user_id: Caller; must own the current participant
            pay_to_leave_jail: Pay $50 before rolling when jailed
            use_goojf: Spend a Get Out of Jail Free card when jailed

        Returns:
            ActionResult with dice, positions, the pending action created
            (if any), messages and whether the game ended
        """
        game = await self.repo.lock_game(game_id)
        if game is None:
            return ActionResult.fail(Failure.NOT_FOUND)
        if game.status != "playing":
            return ActionResult.fail(Failure.BAD_PHASE)

        participants = await self.repo.lock_participants(game_id)
        current = current_participant(game, participants)
        if current is None:
            logger.error(f"Game {game_id} is playing with no active participants")
            return ActionResult.fail(Failure.BAD_STATE)
        if current.user_id != user_id:
            return ActionResult.fail(Failure.NOT_YOUR_TURN)
        if pay_to_leave_jail and use_goojf:
            return ActionResult.fail(Failure.CONFLICTING_JAIL_OPTIONS)
        if await self.repo.get_open_pending(game_id, current.id) is not None:
            return ActionResult.fail(Failure.HAS_PENDING)

        dice = roll_dice(self.rng)
        turn = await self.repo.create_turn(
            game_id=game.id,
            participant_id=current.id,
            dice=dice,
            previous_position=current.position,
            new_position=current.position,
        )
        ctx = RollContext(
            game=game,
            participant=current,
            dice=dice,
            previous_position=current.position,
            turn=turn,
        )
        ctx.messages.append(f"You rolled {dice[0]} and {dice[1]} ({ctx.total}).")
        logger.debug(f"Game {game.game_code} turn {turn.turn_number}: {current.token_color} rolled {dice}")

        if current.in_jail:
            finished = await self._resolve_jail(ctx, pay_to_leave_jail, use_goojf)
            if finished is not None:
                return finished

        await self._move(ctx)
        await self._resolve_landing(ctx)
        return await self._finish(ctx)

    # ---- Jail ----

    async def _resolve_jail(
        self, ctx: RollContext, pay_to_leave_jail: bool, use_goojf: bool
    ) -> Optional[ActionResult]:
        """
        Decide whether a jailed participant moves this roll.

        Returns a finished result when the roll ends in jail (another
        failed attempt, or bankruptcy on the third); None to continue
        with movement.
        """
        p = ctx.participant

        if use_goojf and p.goojf_cards > 0:
            p.goojf_cards -= 1
            _release_from_jail(p)
            ctx.note("Used a Get Out of Jail Free card.")
            return None

        if pay_to_leave_jail and p.cash >= JAIL_FEE:
            await self._pay_jail_fee(ctx, "Paid $50 to leave jail.")
            return None

        if ctx.is_double:
            _release_from_jail(p)
            ctx.note("Rolled doubles and left jail.")
            return None

        if p.jail_turns < 2:
            p.jail_turns += 1
            ctx.notes.append(f"In jail ({p.jail_turns}/3)")
            ctx.messages.append("No doubles. You remain in jail.")
            return await self._finish(ctx)

        ctx.messages.append("No doubles on your third attempt. You must pay $50.")
        if p.cash < JAIL_FEE:
            ctx.note("Bankrupt: unable to pay $50 after third jail attempt.")
            await bankrupt_to_bank(
                self.repo,
                p,
                reason="Unable to pay $50 after third jail attempt",
                turn_id=ctx.turn.id,
            )
            return await self._finish(ctx, lost_turn=True)

        await self._pay_jail_fee(ctx, "Paid $50 to leave jail (third attempt).")
        return None

    async def _pay_jail_fee(self, ctx: RollContext, note: str) -> None:
        p = ctx.participant
        p.cash -= JAIL_FEE
        _release_from_jail(p)
        await self.repo.record_transaction(
            game_id=ctx.game.id,
            from_participant_id=p.id,
            amount=JAIL_FEE,
            transaction_type="jail_fee",
            description="Paid $50 to get out of jail",
            turn_id=ctx.turn.id,
        )
        ctx.note(note)

    # ---- Movement ----

    async def _move(self, ctx: RollContext) -> None:
        p = ctx.participant
        new_position, passed_go = advance(p.position, ctx.total)
        if passed_go:
            await self._credit_pass_go(ctx, "Passed GO")
        p.position = new_position
        ctx.messages.append(f"Moved from {ctx.previous_position} to {new_position}.")

    async def _credit_pass_go(self, ctx: RollContext, description: str) -> None:
        p = ctx.participant
        p.cash += PASS_GO_SALARY
        await self.repo.record_transaction(
            game_id=ctx.game.id,
            to_participant_id=p.id,
            amount=PASS_GO_SALARY,
            transaction_type="pass_go",
            description=description,
            turn_id=ctx.turn.id,
        )
        ctx.note(f"{description}. Collected ${PASS_GO_SALARY}.")

    # ---- Landing ----

    async def _resolve_landing(self, ctx: RollContext) -> None:
        p = ctx.participant
        tile = await self.repo.get_tile_at(p.position)

        if TileType(tile.tile_type) in CARD_TYPES:
            await self._draw_card(ctx, DeckType(tile.tile_type))
            if ctx.pending is not None:
                return
            tile = await self.repo.get_tile_at(p.position)

        kind = TileType(tile.tile_type)
        if kind == TileType.GO_TO_JAIL:
            _send_to_jail(p)
            ctx.note("Go to Jail.")
            return
        if kind == TileType.TAX:
            await self._resolve_tax(ctx, tile)
        elif kind in PURCHASABLE_TYPES and ctx.pending is None:
            await self._resolve_property(ctx, tile)

    async def _draw_card(self, ctx: RollContext, deck_type: DeckType) -> None:
        """Draw the next card from the deck's cursor and apply it."""
        game, p = ctx.game, ctx.participant

        deck = await self.repo.lock_deck(game.id, deck_type.value)
        count = await self.repo.count_cards(deck_type.value)
        if deck is None or count == 0:
            raise ReferenceDataError(f"{deck_type.value} deck missing for game {game.id}")

        card = await self.repo.get_card(deck_type.value, deck.current_index % count + 1)
        if card is None:
            raise ReferenceDataError(
                f"{deck_type.value} card {deck.current_index % count + 1} not seeded"
            )
        deck.current_index += 1
        await self.repo.record_card_draw(
            game_id=game.id, deck=deck, card=card, participant_id=p.id, turn_id=ctx.turn.id
        )
        ctx.note(f"{deck_label(deck_type)}: {card.message}")

        value = card.action_value or {}
        action = CardAction(card.action_type)

        if action == CardAction.COLLECT:
            amount = int(value.get("amount", 0))
            if amount > 0:
                p.cash += amount
                await self.repo.record_transaction(
                    game_id=game.id,
                    to_participant_id=p.id,
                    amount=amount,
                    transaction_type="card",
                    description=card.message,
                    turn_id=ctx.turn.id,
                )

        elif action == CardAction.PAY:
            amount = int(value.get("amount", 0))
            if amount <= 0:
                return
            if p.cash < amount:
                await self._open_pending(
                    ctx,
                    PayBankDebtPayload(
                        amount=amount,
                        transaction_type="card",
                        description=card.message,
                        turn_id=ctx.turn.id,
                    ),
                    opts.PAY_BANK_DEBT,
                )
                ctx.messages.append(f"Card payment due: ${amount}. Sell properties, then pay.")
                ctx.notes.append(f"Card debt pending: ${amount}.")
                return
            p.cash -= amount
            await self.repo.record_transaction(
                game_id=game.id,
                from_participant_id=p.id,
                amount=amount,
                transaction_type="card",
                description=card.message,
                turn_id=ctx.turn.id,
            )

        elif action == CardAction.MOVE:
            destination = int(value.get("position", -1))
            if not 0 <= destination < 40:
                logger.error(f"Card {card.id} has an invalid destination {destination}")
                return
            if value.get("collect_pass_go") and destination < p.position:
                await self._credit_pass_go(ctx, "Passed GO (card)")
            p.position = destination
            ctx.messages.append(f"Moved to {destination}.")

        elif action == CardAction.GO_TO_JAIL:
            _send_to_jail(p)
            ctx.note("Go to Jail.")

        elif action == CardAction.GET_OUT_OF_JAIL_FREE:
            p.goojf_cards += 1
            ctx.note("Received a Get Out of Jail Free card.")

    async def _resolve_tax(self, ctx: RollContext, tile: Tile) -> None:
        p = ctx.participant
        amount = tax_for_tile_name(tile.name)
        if p.cash < amount:
            await self._open_pending(
                ctx,
                PayBankDebtPayload(
                    amount=amount,
                    transaction_type="tax",
                    description=tile.name,
                    turn_id=ctx.turn.id,
                ),
                opts.PAY_BANK_DEBT,
            )
            ctx.messages.append(f"{tile.name} due: ${amount}. Sell properties, then pay.")
            return

        p.cash -= amount
        await self.repo.record_transaction(
            game_id=ctx.game.id,
            from_participant_id=p.id,
            amount=amount,
            transaction_type="tax",
            description=tile.name,
            turn_id=ctx.turn.id,
        )
        ctx.note(f"Paid ${amount} {tile.name}.")

    async def _resolve_property(self, ctx: RollContext, tile: Tile) -> None:
        p = ctx.participant
        price = tile.purchase_price or 0
        if price <= 0:
            return

        ownership = await self.repo.get_ownership(ctx.game.id, tile.id)
        if ownership is None:
            await self._open_pending(
                ctx,
                BuyPropertyPayload(tile_id=tile.id, cost=price),
                opts.LANDED_ON_UNOWNED,
            )
            ctx.messages.append(f"{tile.name} is for sale for ${price}.")
        elif ownership.participant_id != p.id:
            rent = compute_rent(tile.rent_base, tile.purchase_price)
            await self._open_pending(
                ctx,
                PayRentPayload(
                    tile_id=tile.id,
                    owner_participant_id=ownership.participant_id,
                    amount=rent,
                ),
                opts.PAY_RENT,
            )
            ctx.messages.append(f"Rent due on {tile.name}: ${rent}.")

    async def _open_pending(self, ctx: RollContext, payload: PendingPayload, context: str) -> None:
        ctx.pending = await self.repo.create_pending(
            game_id=ctx.game.id,
            participant_id=ctx.participant.id,
            action_type=payload.action_type,
            payload=payload.to_json(),
        )
        ctx.payload = payload
        ctx.options = await opts.build_options_payload(
            self.repo, ctx.participant, ctx.pending, payload, context
        )

    # ---- Completion ----

    async def _finish(self, ctx: RollContext, lost_turn: bool = False) -> ActionResult:
        """Persist the turn outcome and run the post-mutation hook."""
        game, p = ctx.game, ctx.participant
        ctx.turn.new_position = p.position
        ctx.turn.action_taken = " | ".join(ctx.notes) or None

        settlement = await settle_after_mutation(
            self.repo,
            game,
            notify_next_turn=lost_turn,
            previous_player_id=p.id,
        )

        private: List[RealtimeEvent] = [balance_update(p.user_id, game.id, p.id, p.cash)]
        if ctx.options is not None:
            private.append(private_options(p.user_id, ctx.options))

        summary = None
        if ctx.pending is not None and ctx.payload is not None:
            summary = opts.pending_summary(ctx.pending, ctx.payload)

        data = {
            "dice": list(ctx.dice),
            "is_double": ctx.is_double,
            "previous_position": ctx.previous_position,
            "new_position": p.position,
            "participant_id": str(p.id),
            "balance": p.cash,
            "pending_action": summary,
            "messages": ctx.messages,
            "ended": settlement.ended,
            "winner_participant_id": (
                str(settlement.winner_participant_id) if settlement.winner_participant_id else None
            ),
            "next_player_id": (
                str(settlement.next_participant.id) if settlement.next_participant else None
            ),
        }
        return ActionResult.success(data, settlement.events(game.id, *private))
