"""Daily query counter persisted in SQLite."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from shadow_prompt.config import UsageConfig
from shadow_prompt.types import UsageRecord

logger = logging.getLogger(__name__)


class UsageTracker:
    """Gates new queries on today's count and records completed ones.

    Each completed query appends one row keyed by its local date, so a new day
    starts from zero without any reset step and a crash can lose at most the
    row being written.
    """

    def __init__(
        self,
        config: UsageConfig | None = None,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.config = config or UsageConfig()
        self._db_path = Path(self.config.db_path)
        self._today = today
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        _ensure_usage_table(self._db_path)

    @property
    def daily_limit(self) -> int | None:
        return self.config.daily_limit

    def check(self) -> bool:
        """True while today's count is below the daily limit."""
        limit = self.config.daily_limit
        if limit is None:
            return True
        return self.count() < limit

    def record(self) -> UsageRecord:
        day = self._today().isoformat()
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                "INSERT INTO usage_events(day, recorded_at) VALUES (?, ?)",
                (day, datetime.now(timezone.utc).isoformat()),
            )
        current = self.current()
        logger.info("Recorded query %d/%s for %s", current.count, self._limit_text(), day)
        return current

    def current(self) -> UsageRecord:
        day = self._today()
        return UsageRecord(date=day.isoformat(), count=self.count(day), limit=self.config.daily_limit)

    def count(self, day: date | None = None) -> int:
        key = (day or self._today()).isoformat()
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM usage_events WHERE day = ?", (key,)
            ).fetchone()
        return int(row[0]) if row else 0

    def history(self, days: int = 7) -> list[UsageRecord]:
        """Per-day counts for the last `days` days, oldest first."""
        end = self._today()
        start = end - timedelta(days=days - 1)
        with sqlite3.connect(self._db_path) as conn:
            rows = conn.execute(
                "SELECT day, COUNT(*) FROM usage_events WHERE day >= ? AND day <= ? GROUP BY day",
                (start.isoformat(), end.isoformat()),
            ).fetchall()
        counts = {day: int(total) for day, total in rows}
        return [
            UsageRecord(
                date=(start + timedelta(days=offset)).isoformat(),
                count=counts.get((start + timedelta(days=offset)).isoformat(), 0),
                limit=self.config.daily_limit,
            )
            for offset in range(days)
        ]

    def _limit_text(self) -> str:
        return "unlimited" if self.config.daily_limit is None else str(self.config.daily_limit)


def _ensure_usage_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS usage_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                day TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_events_day ON usage_events(day)")
