"""Event disciplines and small event helpers."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List

from .errors import InvalidInputError


class EventType(str, Enum):
    EZF = "EZF"  # individual time trial
    BZF = "BZF"  # mountain time trial
    MZF = "MZF"  # team time trial
    HANDICAP = "Handicap"  # mass start with staggered groups


TIME_TRIAL_TYPES = frozenset({EventType.EZF, EventType.BZF})


def event_type_of(event: Dict) -> EventType:
    raw = event.get("event_type")
    try:
        return EventType(raw)
    except ValueError:
        raise InvalidInputError(f"Event {event.get('id')!r} has unknown event_type {raw!r}") from None


def event_season(event: Dict) -> int:
    """Season year of an event, falling back to the year of its date."""
    season = event.get("season")
    if season is not None:
        try:
            return int(season)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Event {event.get('id')!r} has invalid season {season!r}") from None
    date = str(event.get("date") or "")
    if len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    raise InvalidInputError(f"Event {event.get('id')!r} has no season")


def season_events(events: Iterable[Dict], season: int) -> List[Dict]:
    """Events of one season in calendar order."""
    selected = [e for e in events if event_season(e) == int(season)]
    selected.sort(key=lambda e: (e.get("date") or "", str(e.get("id"))))
    return selected
