"""Read-only timetable lookups: (grade, class, weekday) -> ordered class entries."""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from liveclass.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleEntry:
    """One class slot in a day's timetable."""

    period: int
    subject: str
    classroom: str = ""


def parse_daily_entries(items: list[dict[str, Any]]) -> list[ScheduleEntry]:
    """Parse one weekday of timetable JSON, skipping empty slots.

    Accepts both ``period`` and the timetable API's ``classTime`` key; the
    classroom falls back to the ``teacher`` field, which the API uses for the
    room of elective classes.
    """
    entries = []
    for item in items:
        period = item.get("period") or item.get("classTime")
        subject = (item.get("subject") or "").strip()
        if not period or not subject:
            continue
        classroom = item.get("classroom") or item.get("teacher") or ""
        entries.append(ScheduleEntry(period=int(period), subject=subject, classroom=classroom))
    return sorted(entries, key=lambda e: e.period)


class ScheduleResolver(ABC):
    """Abstract timetable source."""

    @abstractmethod
    async def resolve(self, grade: int, class_number: int, weekday_index: int) -> list[ScheduleEntry]:
        """Entries for one class on one weekday (Mon=0), ordered by period."""
        ...

    async def find(
        self, grade: int, class_number: int, weekday_index: int, period: int
    ) -> ScheduleEntry | None:
        for entry in await self.resolve(grade, class_number, weekday_index):
            if entry.period == period:
                return entry
        return None


class StaticScheduleResolver(ScheduleResolver):
    """Timetables held in memory, keyed by (grade, class_number)."""

    def __init__(self, timetables: dict[tuple[int, int], list[list[ScheduleEntry]]] | None = None) -> None:
        self._timetables = timetables or {}

    async def resolve(self, grade: int, class_number: int, weekday_index: int) -> list[ScheduleEntry]:
        week = self._timetables.get((grade, class_number), [])
        if 0 <= weekday_index < len(week):
            return list(week[weekday_index])
        return []

    @classmethod
    def from_json_file(cls, path: str) -> "StaticScheduleResolver":
        """Load ``{"<grade>-<class>": [[{...}, ...], ...]}`` from disk."""
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        timetables = {}
        for key, week in raw.items():
            grade, class_number = (int(part) for part in key.split("-", 1))
            timetables[(grade, class_number)] = [parse_daily_entries(day) for day in week]
        return cls(timetables)


class HttpScheduleResolver(ScheduleResolver):
    """Timetable API client: ``GET {base_url}/{grade}/{class}`` returns one list per weekday.

    A failed fetch is remembered for ``failure_ttl_seconds`` and re-raised
    without touching the network, so an unreachable API costs one timeout
    per class rather than one per lookup.
    """

    def __init__(
        self,
        base_url: str,
        cache_ttl_seconds: int = 600,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        failure_ttl_seconds: float = 60.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache_ttl = cache_ttl_seconds
        self._timeout = timeout
        self._transport = transport
        self._failure_ttl = failure_ttl_seconds
        self._cache: dict[tuple[int, int], tuple[float, list[list[ScheduleEntry]]]] = {}
        self._failures: dict[tuple[int, int], tuple[float, Exception]] = {}

    async def _fetch_week(self, grade: int, class_number: int) -> list[list[ScheduleEntry]]:
        key = (grade, class_number)
        cached = self._cache.get(key)
        if cached and time.monotonic() - cached[0] < self._cache_ttl:
            return cached[1]

        failed = self._failures.get(key)
        if failed and time.monotonic() - failed[0] < self._failure_ttl:
            raise failed[1]

        url = f"{self._base_url}/{grade}/{class_number}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._failures[key] = (time.monotonic(), e)
            raise

        week = [parse_daily_entries(day or []) for day in data]
        self._cache[key] = (time.monotonic(), week)
        self._failures.pop(key, None)
        logger.info("Fetched timetable for %d-%d (%d days)", grade, class_number, len(week))
        return week

    async def resolve(self, grade: int, class_number: int, weekday_index: int) -> list[ScheduleEntry]:
        week = await self._fetch_week(grade, class_number)
        if 0 <= weekday_index < len(week):
            return week[weekday_index]
        return []


def get_schedule_resolver(settings: Settings) -> ScheduleResolver:
    if settings.schedule_api_url:
        return HttpScheduleResolver(
            settings.schedule_api_url,
            cache_ttl_seconds=settings.schedule_cache_ttl_seconds,
        )
    logger.warning("No timetable API configured; updates will use placeholder class names")
    return StaticScheduleResolver()
