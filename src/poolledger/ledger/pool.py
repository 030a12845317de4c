from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple

from .errors import (
    BelowMinimum,
    InsufficientCustody,
    InvalidAmount,
    InvalidState,
    NotFound,
    NothingToDistribute,
    PendingDividends,
    PoolLedgerError,
    TransferFailed,
    Unauthorized,
)
from .guard import OperationGuard
from .model import MIN_INVESTMENT, Participant, ParticipantInfo, PoolMetrics, PoolState, Principal
from ..events.schema import (
    BaseEvent,
    ContributionReceived,
    DividendDistributed,
    DividendsAdded,
    EventEnvelope,
    PoolClosed,
)
from ..events.bus import publish as publish_event
from ..metrics.pool import (
    get_contributed_amount_total,
    get_contributions_total,
    get_dividends_added_total,
    get_dividends_paid_total,
    get_operations_rejected_total,
    get_payouts_total,
    set_pool_gauges,
)

if TYPE_CHECKING:
    from ..config.loader import PoolSettings
    from ..settlement.base import Settlement

log = logging.getLogger("poolledger.ledger")

Subscriber = Callable[[EventEnvelope], None]


class PoolLedger:
    """Ownership accounting and dividend distribution for a single pool.

    Every mutating operation runs under the in-flight guard and inside a
    settlement transaction. If it raises, ledger state is restored from the
    snapshot taken on entry, the settlement rolls back, and the events it
    produced are dropped. Committed events are queued in sequence order and
    drained after the guard is released; an operation started by a subscriber
    only queues, so delivery order always follows sequence order.
    """

    def __init__(
        self,
        manager: Principal,
        settlement: "Settlement",
        pool_id: str = "pool",
        min_investment: int = MIN_INVESTMENT,
        clock: Optional[Callable[[], int]] = None,
    ):
        if not manager:
            raise ValueError("manager principal is required")
        self._manager = manager
        self.settlement = settlement
        self.pool_id = pool_id
        self.min_investment = int(min_investment)
        self._clock = clock or (lambda: int(time.time()))
        self.participants: Dict[Principal, Participant] = {}
        self.participant_order: List[Principal] = []
        self.total_contributions = 0
        self.total_dividends = 0
        self.state = PoolState.ACTIVE
        self._guard = OperationGuard()
        self._subscribers: List[Subscriber] = []
        self._pending: List[BaseEvent] = []
        self._sequence = 0
        self._operations = 0
        self._outbox: Deque[EventEnvelope] = deque()
        self._outbox_lock = threading.Lock()
        self._draining = False

    @classmethod
    def from_settings(
        cls,
        settings: "PoolSettings",
        settlement: "Settlement",
        clock: Optional[Callable[[], int]] = None,
    ) -> "PoolLedger":
        return cls(
            manager=settings.manager,
            settlement=settlement,
            pool_id=settings.pool_id,
            min_investment=settings.min_investment,
            clock=clock,
        )

    @property
    def manager(self) -> Principal:
        return self._manager

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    # ---- Mutating operations ----

    def contribute(self, caller: Principal, amount: int, now: Optional[int] = None) -> ParticipantInfo:
        with self._operation("contribute"):
            self._require_active()
            amount = self._require_int(amount)
            if amount < self.min_investment:
                raise BelowMinimum(f"contribution {amount} below minimum {self.min_investment}")
            ts = self._now(now)
            self._settle(f"collect {amount} from {caller}", self.settlement.collect, caller, amount)
            p = self.participants.get(caller)
            if p is None:
                p = Participant(identity=caller, last_dividends_claimed=ts)
                self.participants[caller] = p
                self.participant_order.append(caller)
            p.contribution += amount
            self.total_contributions += amount
            self._recompute_ownership()
            self._emit(ContributionReceived(ts=ts, pool_id=self.pool_id, identity=caller, amount=amount))
            info = self._info(p)
        return info

    def add_dividends(self, caller: Principal, amount: int, now: Optional[int] = None) -> int:
        """Fund dividends from the manager's wallet; returns the new pending total."""
        with self._operation("add_dividends"):
            self._require_manager(caller)
            self._require_active()
            amount = self._require_int(amount)
            if amount <= 0:
                raise InvalidAmount(f"dividend amount must be positive, got {amount}")
            self._settle(f"collect {amount} dividends from {caller}", self.settlement.collect, caller, amount)
            self.total_dividends += amount
            self._emit(DividendsAdded(ts=self._now(now), pool_id=self.pool_id, amount=amount))
            pending = self.total_dividends
        return pending

    def distribute_dividends(self, caller: Principal, now: Optional[int] = None) -> Dict[Principal, int]:
        """Pay every participant its floor share of the pending dividends.

        Shares are computed against the pending total at entry. A share is paid
        only while it fits in what is left; anything unpaid stays pending for
        the next round. One failed transfer fails the whole distribution.
        """
        with self._operation("distribute_dividends"):
            self._require_manager(caller)
            self._require_active()
            if self.total_dividends == 0:
                raise NothingToDistribute("no dividends are pending")
            custody = self.settlement.custody_balance()
            if custody < self.total_dividends:
                raise InsufficientCustody(
                    f"custody {custody} cannot cover pending dividends {self.total_dividends}"
                )
            ts = self._now(now)
            total = self.total_dividends
            remaining = total
            paid: Dict[Principal, int] = {}
            for identity in self.participant_order:
                p = self.participants[identity]
                share = p.ownership_percentage * total // 100
                if share > 0 and share <= remaining:
                    remaining -= share
                    self._settle(
                        f"dividend transfer of {share} to {identity}", self.settlement.transfer_value, identity, share
                    )
                    p.last_dividends_claimed = ts
                    paid[identity] = share
                    self._emit(DividendDistributed(ts=ts, pool_id=self.pool_id, identity=identity, amount=share))
            self.total_dividends = remaining
        return paid

    def close_pool(self, caller: Principal, now: Optional[int] = None) -> None:
        with self._operation("close_pool"):
            self._require_manager(caller)
            if self.state is PoolState.CLOSED:
                raise InvalidState("pool is already closed")
            if self.total_dividends != 0:
                raise PendingDividends(f"{self.total_dividends} in dividends still pending")
            self.state = PoolState.CLOSED
            self._emit(PoolClosed(ts=self._now(now), pool_id=self.pool_id))

    # ---- Queries ----

    def is_participant(self, identity: Principal) -> bool:
        with self._guard.reading():
            return identity in self.participants

    def get_participant_info(self, identity: Principal) -> ParticipantInfo:
        with self._guard.reading():
            p = self.participants.get(identity)
            if p is None or not p.exists:
                raise NotFound(f"{identity} has never contributed")
            return self._info(p)

    def get_pool_metrics(self) -> PoolMetrics:
        with self._guard.reading():
            return PoolMetrics(
                pool_id=self.pool_id,
                manager=self._manager,
                total_contributions=self.total_contributions,
                total_dividends=self.total_dividends,
                participant_count=len(self.participant_order),
                state=self.state,
                custody_balance=self.settlement.custody_balance(),
            )

    def get_participant_identities(self) -> Tuple[Principal, ...]:
        with self._guard.reading():
            return tuple(self.participant_order)

    # ---- Internals ----

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        try:
            with self._guard.hold(name):
                snapshot = self._snapshot()
                self._pending = []
                try:
                    with self.settlement.transaction():
                        yield
                except BaseException:
                    self._restore(snapshot)
                    self._pending = []
                    raise
                self._enqueue(self._seal(name))
                set_pool_gauges(
                    self.pool_id, self.total_contributions, self.total_dividends, len(self.participant_order)
                )
        except PoolLedgerError as e:
            get_operations_rejected_total().labels(name, e.reason).inc()
            log.warning("%s rejected for pool %s: %s (%s)", name, self.pool_id, e.reason, e)
            raise
        self._deliver()

    def _snapshot(self):
        return (
            {k: dataclasses.replace(p) for k, p in self.participants.items()},
            list(self.participant_order),
            self.total_contributions,
            self.total_dividends,
            self.state,
        )

    def _restore(self, snapshot) -> None:
        (
            self.participants,
            self.participant_order,
            self.total_contributions,
            self.total_dividends,
            self.state,
        ) = snapshot

    def _recompute_ownership(self) -> None:
        total = self.total_contributions
        for identity in self.participant_order:
            p = self.participants[identity]
            p.ownership_percentage = p.contribution * 100 // total if total else 0

    def _emit(self, event: BaseEvent) -> None:
        self._pending.append(event)

    def _seal(self, name: str) -> List[EventEnvelope]:
        self._operations += 1
        correlation_id = f"{self.pool_id}:{name}:{self._operations}"
        envelopes = []
        for event in self._pending:
            self._sequence += 1
            envelopes.append(EventEnvelope(correlation_id=correlation_id, sequence=self._sequence, event=event))
        self._pending = []
        return envelopes

    def _enqueue(self, envelopes: List[EventEnvelope]) -> None:
        # Called under the guard, so queue order is sequence order.
        with self._outbox_lock:
            self._outbox.extend(envelopes)

    def _deliver(self) -> None:
        """Drain the outbox unless a drain is already running.

        An operation started by a subscriber (or on another thread) while a
        drain runs only enqueues; the running drain delivers its events after
        the ones already queued.
        """
        with self._outbox_lock:
            if self._draining:
                return
            self._draining = True
        try:
            while True:
                with self._outbox_lock:
                    if not self._outbox:
                        self._draining = False
                        return
                    env = self._outbox.popleft()
                self._publish(env)
        except BaseException:
            with self._outbox_lock:
                self._draining = False
            raise

    def _publish(self, env: EventEnvelope) -> None:
        self._count(env.event)
        publish_event(env)
        for callback in list(self._subscribers):
            try:
                callback(env)
            except Exception:
                # The operation has committed; a failing observer cannot undo it.
                log.exception("event subscriber failed for %s seq=%s", env.event.event_type, env.sequence)

    def _count(self, event: BaseEvent) -> None:
        if isinstance(event, ContributionReceived):
            get_contributions_total().labels(self.pool_id).inc()
            get_contributed_amount_total().labels(self.pool_id).inc(event.amount)
        elif isinstance(event, DividendsAdded):
            get_dividends_added_total().labels(self.pool_id).inc(event.amount)
        elif isinstance(event, DividendDistributed):
            get_payouts_total().labels(self.pool_id).inc()
            get_dividends_paid_total().labels(self.pool_id).inc(event.amount)

    def _settle(self, what: str, call: Callable[..., bool], *args: Any) -> None:
        try:
            ok = call(*args)
        except PoolLedgerError:
            raise
        except Exception as e:
            raise TransferFailed(f"{what} failed: {e}") from e
        if not ok:
            raise TransferFailed(f"{what} was refused")

    def _now(self, now: Optional[int]) -> int:
        return int(now) if now is not None else int(self._clock())

    def _require_manager(self, caller: Principal) -> None:
        if caller != self._manager:
            raise Unauthorized(f"{caller} is not the pool manager")

    def _require_active(self) -> None:
        if self.state is not PoolState.ACTIVE:
            raise InvalidState(f"pool is {self.state.value}")

    @staticmethod
    def _require_int(amount) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"amount must be an integer number of minor units, got {amount!r}")
        return amount

    @staticmethod
    def _info(p: Participant) -> ParticipantInfo:
        return ParticipantInfo(
            identity=p.identity,
            contribution=p.contribution,
            ownership_percentage=p.ownership_percentage,
            last_dividends_claimed=p.last_dividends_claimed,
        )
