"""Per-user request budget.

Each user has one UserLimit record: a remaining-request count and the
timestamp the current window opened. Reads reset the window lazily once it
is older than `reset_window`; writes are last-write-wins across devices.

Within one session every ledger call is awaited in sequence by the turn
engine, so there is no locking here.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from aethelgard.models import UserLimit
from aethelgard.storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_BUDGET = 5
RESET_WINDOW = timedelta(hours=24)
REWARD_GRANT = 10


class BudgetStore(Protocol):
    def get_limit_record(self, user_id: str) -> UserLimit | None: ...

    def upsert_limit_record(self, user_id: str, record: UserLimit) -> None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class BudgetLedger:
    def __init__(
        self,
        store: BudgetStore,
        default_budget: int = DEFAULT_BUDGET,
        reset_window: timedelta = RESET_WINDOW,
        reward_grant: int = REWARD_GRANT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.default_budget = default_budget
        self.reset_window = reset_window
        self.reward_grant = reward_grant
        self._clock = clock

    def _fresh(self) -> UserLimit:
        return UserLimit(request_count=self.default_budget, last_reset_at=self._clock().isoformat())

    def get_limits(self, user_id: str) -> UserLimit:
        """Current budget, creating or lazily refreshing the record as needed."""
        try:
            record = self._store.get_limit_record(user_id)
            if record is None:
                fresh = self._fresh()
                self._store.upsert_limit_record(user_id, fresh)
                logger.info("created budget for user=%s count=%d", user_id, fresh.request_count)
                return fresh

            elapsed = abs(self._clock() - parse_timestamp(record.last_reset_at))
            if elapsed >= self.reset_window:
                fresh = self._fresh()
                self._store.upsert_limit_record(user_id, fresh)
                logger.info("budget window reset for user=%s", user_id)
                return fresh

            return record
        except (StorageError, ValueError) as e:
            logger.warning("budget lookup failed for user=%s, using default: %s", user_id, e)
            return self._fresh()

    def decrement(self, user_id: str) -> int:
        """Consume one request. Returns the new count; never below zero."""
        try:
            record = self._store.get_limit_record(user_id)
            if record is None or record.request_count <= 0:
                return 0
            new_count = record.request_count - 1
            self._store.upsert_limit_record(
                user_id, record.model_copy(update={"request_count": new_count})
            )
            logger.debug("budget user=%s count=%d", user_id, new_count)
            return new_count
        except StorageError as e:
            logger.warning("budget decrement failed for user=%s: %s", user_id, e)
            return 0

    def grant_reward(self, user_id: str) -> int:
        """Set the count to the reward grant, whatever it was before."""
        # TODO: decide with product whether an ad reward should add to the balance instead
        try:
            record = self._store.get_limit_record(user_id)
            last_reset_at = record.last_reset_at if record else self._clock().isoformat()
            self._store.upsert_limit_record(
                user_id,
                UserLimit(request_count=self.reward_grant, last_reset_at=last_reset_at),
            )
            logger.info("reward granted user=%s count=%d", user_id, self.reward_grant)
            return self.reward_grant
        except StorageError as e:
            logger.error("reward grant failed for user=%s: %s", user_id, e)
            return 0

    def deadline(self, limit: UserLimit) -> datetime:
        return parse_timestamp(limit.last_reset_at) + self.reset_window
