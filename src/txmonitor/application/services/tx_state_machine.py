"""
Transaction lifecycle state machine.

    WaitingForApproval -> Propagating -> WaitingForConfirmation -> Success | Failure
           |                   |                  |
           v                   +------------------+--> Error
    CancelledByTheUser

Success is re-entered on every new block while confirmations are counted up to
the safe threshold; no other state may be re-entered or left backwards.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from loguru import logger

from ...domain.errors import ChainReadError, InvalidTransition
from ...domain.models.chain import ReceiptLike, TransactionLike
from ...domain.models.predicates import confirmations_for
from ...domain.models.status import TxRebroadcastStatus, TxStatus
from ...domain.models.transaction import (
    CancelledByTheUser,
    Error,
    Failure,
    Propagating,
    Success,
    TxPayload,
    TxRecord,
    WaitingForConfirmation,
    utcnow,
)
from ...ports.chain import SendCallable
from .block_clock import BlockClock
from .rebroadcast import RebroadcastReconciler
from .receipt_poller import Observation, ObservationKind, ReceiptPoller

USER_DENIED_MESSAGE = "User denied transaction signature"

StateCallback = Callable[[TxRecord], Awaitable[None]]


class TxStateMachine:
    """Explicit transition rules for a transaction record."""

    def __init__(self):
        self._transitions: Dict[TxStatus, Set[TxStatus]] = {
            TxStatus.WAITING_FOR_APPROVAL: {TxStatus.PROPAGATING, TxStatus.CANCELLED_BY_THE_USER},
            TxStatus.PROPAGATING: {TxStatus.WAITING_FOR_CONFIRMATION, TxStatus.ERROR},
            TxStatus.WAITING_FOR_CONFIRMATION: {TxStatus.SUCCESS, TxStatus.FAILURE, TxStatus.ERROR},
            TxStatus.SUCCESS: {TxStatus.SUCCESS},
        }

    def can_transition(self, current: TxStatus, target: TxStatus) -> bool:
        return target in self._transitions.get(current, set())

    def transition(
        self, record: TxRecord, payload: TxPayload, terminal: bool = False, at: Optional[datetime] = None
    ) -> TxRecord:
        if not self.can_transition(record.status, payload.status):
            raise InvalidTransition(f"tx #{record.tx_no}: {record.status.value} -> {payload.status.value}")
        return record.advance(payload, at=at, terminal=terminal)


class TransactionWatch:
    """
    Drives one record from submission (or from its persisted status) to a
    terminal state. Every state is handed to ``on_state`` and awaited before the
    next poll, so observations for one transaction are applied strictly in order.
    """

    def __init__(
        self,
        record: TxRecord,
        *,
        fsm: TxStateMachine,
        poller: ReceiptPoller,
        reconciler: RebroadcastReconciler,
        clock: BlockClock,
        safe_confirmations: int,
        on_state: StateCallback,
    ):
        self.record = record
        self.fsm = fsm
        self.poller = poller
        self.reconciler = reconciler
        self.clock = clock
        self.safe_confirmations = safe_confirmations
        self._on_state = on_state
        self._replacement: Optional[Tuple[str, TxRebroadcastStatus]] = None

    async def send_and_monitor(self, send: SendCallable) -> TxRecord:
        try:
            tx_hash = await send()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if USER_DENIED_MESSAGE in str(exc):
                logger.info(f"[TxWatch] tx #{self.record.tx_no} rejected by the user")
            else:
                logger.error(f"[TxWatch] tx #{self.record.tx_no} broadcast failed: {exc}")
            await self._apply(CancelledByTheUser(error=str(exc) or type(exc).__name__), terminal=True)
            return self.record

        logger.info(f"[TxWatch] tx #{self.record.tx_no} broadcast as {tx_hash}")
        await self._apply(Propagating(tx_hash=tx_hash, broadcasted_at=utcnow()))
        return await self.monitor()

    async def monitor(self) -> TxRecord:
        """Watch a record that already has a hash (Propagating or WaitingForConfirmation)."""
        payload = self.record.payload
        if not isinstance(payload, (Propagating, WaitingForConfirmation)):
            raise InvalidTransition(f"tx #{self.record.tx_no}: cannot monitor a {self.record.status.value} record")
        tx_hash, broadcasted_at = payload.tx_hash, payload.broadcasted_at

        try:
            async for obs in self.poller.observe(tx_hash, resolve=self._resolve):
                if obs.kind is ObservationKind.NOT_VISIBLE:
                    continue
                if self.record.status is TxStatus.PROPAGATING:
                    await self._apply(WaitingForConfirmation(tx_hash=tx_hash, broadcasted_at=broadcasted_at))
                if obs.kind is ObservationKind.RECEIPT:
                    await self._settle(obs)
                    return self.record
        except ChainReadError as exc:
            logger.error(f"[TxWatch] tx #{self.record.tx_no} poll failed: {exc}")
            await self._apply(Error(tx_hash=self._current_hash(tx_hash), error=str(exc)), terminal=True)
            return self.record

        logger.warning(
            f"[TxWatch] tx #{self.record.tx_no} stopped polling in {self.record.status.value}; "
            "it will be resumed on next start"
        )
        return self.record

    async def _resolve(self, transaction: TransactionLike) -> Tuple[str, Optional[TxRebroadcastStatus]]:
        tx_hash, rebroadcast = await self.reconciler.resolve(self.record.account, transaction, transaction.hash)
        if rebroadcast in (TxRebroadcastStatus.SPEEDUP, TxRebroadcastStatus.CANCEL):
            if self._replacement is None or self._replacement[0] != tx_hash:
                logger.warning(
                    f"[TxWatch] tx #{self.record.tx_no} replaced ({rebroadcast.value}): "
                    f"{transaction.hash[:18]}... -> {tx_hash[:18]}..."
                )
            self._replacement = (tx_hash, rebroadcast)
        elif self._replacement is not None:
            # once replaced, the external hash wins even if the index is briefly empty
            return self._replacement
        return tx_hash, rebroadcast

    def _current_hash(self, fallback: str) -> str:
        return self._replacement[0] if self._replacement else fallback

    async def _settle(self, obs: Observation) -> None:
        receipt: ReceiptLike = obs.receipt
        if not receipt.status:
            logger.warning(f"[TxWatch] tx #{self.record.tx_no} reverted in block {receipt.block_number}")
            await self._apply(
                Failure(
                    tx_hash=receipt.transaction_hash,
                    block_number=receipt.block_number,
                    receipt=receipt,
                    rebroadcast=obs.rebroadcast,
                ),
                terminal=True,
            )
            return

        await self._count_confirmations(receipt, self.safe_confirmations, obs.rebroadcast)

    async def resume_confirmations(self) -> TxRecord:
        """Keep counting confirmations for a persisted Success that is not yet safe."""
        payload = self.record.payload
        if not isinstance(payload, Success):
            raise InvalidTransition(f"tx #{self.record.tx_no}: {self.record.status.value} has no confirmations")
        if not payload.is_safe:
            await self._count_confirmations(payload.receipt, payload.safe_confirmations, payload.rebroadcast)
        return self.record

    async def _count_confirmations(
        self, receipt: ReceiptLike, safe_confirmations: int, rebroadcast: Optional[TxRebroadcastStatus]
    ) -> None:
        current = self.clock.current
        if current is None:
            current = await self.clock.wait_for_first()
        while True:
            confirmations = confirmations_for(current, receipt.block_number)
            await self._apply(
                Success(
                    tx_hash=receipt.transaction_hash,
                    block_number=receipt.block_number,
                    receipt=receipt,
                    confirmations=confirmations,
                    safe_confirmations=safe_confirmations,
                    rebroadcast=rebroadcast,
                ),
                terminal=True,
            )
            if confirmations >= safe_confirmations:
                logger.info(
                    f"[TxWatch] tx #{self.record.tx_no} confirmed with {confirmations} confirmations"
                )
                return
            current = await self.clock.wait_for_block_after(current)

    async def _apply(self, payload: TxPayload, terminal: bool = False) -> None:
        self.record = self.fsm.transition(self.record, payload, terminal=terminal)
        await self._on_state(self.record)
