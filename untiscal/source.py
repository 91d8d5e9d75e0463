"""
Timetable source: fetch raw weekly timetable data from a WebUntis server.

One request per week window:

    GET <base_url>/WebUntis/api/public/timetable/weekly/data
        ?elementType=<type>&elementId=<id>&date=YYYY-MM-DD&formatId=<n>

The response carries the period records of the element and the legend
("elements") needed to resolve their course/room references.

Error policy:
- the provider rejecting one window (HTTP error status, error payload,
  unexpected JSON) -> SourceError; fetch_windows() logs it and continues
- connection problems/timeouts are not masked and propagate to the caller
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from untiscal.errors import SourceError
from untiscal.pipeline import RawTimetable
from untiscal.summary import week_start

log = logging.getLogger(__name__)

TIMETABLE_PATH = "/WebUntis/api/public/timetable/weekly/data"
ELEMENT_TYPE_STUDENT = 5


@dataclass
class RawWeek:
    periods: List[Dict[str, Any]] = field(default_factory=list)
    legend: List[Dict[str, Any]] = field(default_factory=list)
    last_import: Optional[datetime] = None


def _from_millis(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def parse_week_payload(payload: Any, element_id: int) -> RawWeek:
    """
    Extract periods, legend and import timestamp from one weekly response.
    """
    try:
        data = payload["data"]
        if data.get("error"):
            raise SourceError(f"Provider error: {data['error']}")
        result = data["result"]
        inner = result["data"]
        periods = inner.get("elementPeriods", {}).get(str(element_id), [])
        legend = inner.get("elements", [])
    except (KeyError, TypeError, AttributeError) as e:
        raise SourceError(f"Unexpected timetable payload: {e!r}") from e

    return RawWeek(
        periods=list(periods),
        legend=list(legend),
        last_import=_from_millis(result.get("lastImportTimestamp")),
    )


class UntisSource:
    """
    Thin client around a requests.Session.
    """

    def __init__(
        self,
        base_url: str,
        element_id: int,
        element_type: int = ELEMENT_TYPE_STUDENT,
        cookie: Optional[str] = None,
        tenant_id: Optional[str] = None,
        format_id: int = 1,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.element_id = element_id
        self.element_type = element_type
        self.format_id = format_id
        self.timeout = timeout
        self.session = session or requests.Session()
        if cookie:
            self.session.headers["Cookie"] = cookie
        if tenant_id:
            self.session.headers["Tenant-Id"] = tenant_id

    def fetch_week(self, day: date) -> RawWeek:
        params = {
            "elementType": self.element_type,
            "elementId": self.element_id,
            "date": day.isoformat(),
            "formatId": self.format_id,
        }
        resp = self.session.get(self.base_url + TIMETABLE_PATH, params=params, timeout=self.timeout)
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise SourceError(f"Window {day}: HTTP {resp.status_code}") from e
        try:
            payload = resp.json()
        except ValueError as e:
            raise SourceError(f"Window {day}: response is not JSON") from e
        return parse_week_payload(payload, self.element_id)


def week_windows(start: date, weeks: int) -> List[date]:
    """
    Monday of each of the `weeks` weeks starting with the week of `start`.
    """
    first = week_start(start)
    return [first + timedelta(weeks=i) for i in range(weeks)]


def fetch_windows(source: UntisSource, windows: Iterable[date]) -> RawTimetable:
    """
    Fetch windows one after another and combine them.

    A window failing with SourceError is skipped with a warning.
    """
    periods: List[Dict[str, Any]] = []
    legend: List[Dict[str, Any]] = []
    last_import: Optional[datetime] = None
    fetched = 0

    for day in windows:
        try:
            week = source.fetch_week(day)
        except SourceError as e:
            log.warning("Skipping window %s: %s", day, e)
            continue
        fetched += 1
        periods.extend(week.periods)
        legend.extend(week.legend)
        if week.last_import and (last_import is None or week.last_import > last_import):
            last_import = week.last_import

    log.info("Fetched %d windows, %d period records", fetched, len(periods))
    return RawTimetable(periods=periods, legend=legend, last_import=last_import)
