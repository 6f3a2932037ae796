"""In-process change feed for table rows.

Subscribers register a table name plus equality filters written the way the
hosted realtime service spells them (``delivery_id=eq.<uuid>``,
``contract_status_id=eq.4``). Publishers call :meth:`ChangeFeed.publish` after
a commit; callbacks run synchronously on the publishing thread and their
errors are logged, never raised back into the writer.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str  # INSERT | UPDATE
    new: Mapping[str, Any]
    old: Mapping[str, Any] = field(default_factory=dict)


def eq_filter(column: str, value: Any) -> str:
    return f"{column}=eq.{value}"


def parse_filter(expr: str) -> tuple[str, str]:
    column, sep, rest = expr.partition("=")
    op, dot, value = rest.partition(".")
    if not sep or not dot or op != "eq" or not column:
        raise ValueError(f"unsupported filter: {expr!r}")
    return column.strip(), value


class Subscription:
    def __init__(self, feed: "ChangeFeed", sub_id: int):
        self._feed = feed
        self._id = sub_id

    def remove(self) -> None:
        self._feed._unsubscribe(self._id)


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subs: dict[int, tuple[str, list[tuple[str, str]], Callable[[ChangeEvent], None]]] = {}

    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None], filters: list[str] | None = None) -> Subscription:
        parsed = [parse_filter(f) for f in (filters or [])]
        with self._lock:
            sub_id = next(self._ids)
            self._subs[sub_id] = (table, parsed, callback)
        return Subscription(self, sub_id)

    def _unsubscribe(self, sub_id: int) -> None:
        with self._lock:
            self._subs.pop(sub_id, None)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: list[tuple[str, str]]) -> bool:
        for column, value in filters:
            if column not in row or str(row[column]) != value:
                return False
        return True

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = [cb for table, filters, cb in self._subs.values()
                       if table == event.table and self._matches(event.new, filters)]
        for cb in targets:
            try:
                cb(event)
            except Exception:
                logger.exception("change feed subscriber failed for %s %s", event.table, event.event_type)
        return len(targets)


change_feed = ChangeFeed()


def row_to_dict(obj) -> dict:
    """Column values of an ORM instance, for change events."""
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}
