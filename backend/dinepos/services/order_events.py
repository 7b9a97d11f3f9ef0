"""
Order change stream.

Every committed insert or update of an Order is published to the
subscribers of that order's restaurant, whatever code path wrote it (order
service, admin tooling, CLI). This is what keeps inventory availability a
projection of the live order set instead of a counter that can drift.

Changes are captured from SQLAlchemy session events:
- after_flush collects touched Order rows into session.info
- after_commit moves them onto the feed's pending queue
- after_rollback discards them

No SQL may run inside after_commit, so delivery happens in
dispatch_pending(), which the order service calls right after its commits
and the app calls at the end of every request.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..models import Order

logger = logging.getLogger(__name__)

_PENDING_KEY = "dinepos.order_changes"
EXTENSION_KEY = "dinepos.order_feed"


@dataclass(frozen=True)
class OrderChange:
    order_id: int
    restaurant_id: int
    status: str
    kind: str  # "created" | "updated" | "deleted"


class Subscription:
    """Handle returned by subscribe(); close() stops delivery."""

    def __init__(self, feed: "OrderChangeFeed", restaurant_id: int, callback: Callable[[OrderChange], None]):
        self._feed = feed
        self.restaurant_id = restaurant_id
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._feed._remove(self)
            self.closed = True


class OrderChangeFeed:
    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: dict[int, list[Subscription]] = defaultdict(list)
        self._pending: deque[OrderChange] = deque()

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_KEY] = self
        _install_session_hooks()

        @app.after_request
        def _deliver_order_changes(response):
            self.dispatch_pending()
            return response

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, restaurant_id: int, callback: Callable[[OrderChange], None]) -> Subscription:
        subscription = Subscription(self, restaurant_id, callback)
        with self._lock:
            self._subscribers[restaurant_id].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.restaurant_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.restaurant_id, None)

    def subscriber_count(self, restaurant_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(restaurant_id, []))

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def enqueue(self, changes) -> None:
        with self._lock:
            self._pending.extend(changes)

    def dispatch_pending(self) -> int:
        """
        Deliver queued changes, coalesced to one call per subscriber per
        restaurant (the last change wins). Returns the number of callbacks run.
        """
        with self._lock:
            if not self._pending:
                return 0
            latest: dict[int, OrderChange] = {}
            while self._pending:
                change = self._pending.popleft()
                latest[change.restaurant_id] = change
            targets = [
                (sub, change)
                for restaurant_id, change in latest.items()
                for sub in list(self._subscribers.get(restaurant_id, []))
            ]

        delivered = 0
        for subscription, change in targets:
            if subscription.closed:
                continue
            try:
                subscription.callback(change)
                delivered += 1
            except Exception:
                # Subscriber failures never reach the writer
                logger.exception(
                    "Order change subscriber failed for restaurant %s", change.restaurant_id
                )
        return delivered

    def publish(self, change: OrderChange) -> int:
        self.enqueue([change])
        return self.dispatch_pending()


def get_order_feed() -> OrderChangeFeed | None:
    if not has_app_context():
        return None
    return current_app.extensions.get(EXTENSION_KEY)


# ----------------------------------------------------------------------
# Session hooks
# ----------------------------------------------------------------------

_hooks_installed = False


def _collect(session, instances, kind: str) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj in instances:
        if isinstance(obj, Order) and obj.id is not None:
            pending.append(OrderChange(obj.id, obj.restaurant_id, obj.status, kind))


def _after_flush(session, flush_context) -> None:
    _collect(session, session.new, "created")
    _collect(session, [o for o in session.dirty if session.is_modified(o)], "updated")
    _collect(session, session.deleted, "deleted")


def _after_commit(session) -> None:
    changes = session.info.pop(_PENDING_KEY, None)
    if not changes:
        return
    feed = get_order_feed()
    if feed is not None:
        feed.enqueue(changes)


def _after_rollback(session) -> None:
    session.info.pop(_PENDING_KEY, None)


def _install_session_hooks() -> None:
    global _hooks_installed
    if _hooks_installed:
        return
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_rollback", _after_rollback)
    _hooks_installed = True
