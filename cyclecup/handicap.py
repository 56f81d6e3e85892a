"""Time handicaps for time-trial style events."""

from __future__ import annotations

from typing import Dict, Optional

from .errors import InvalidInputError
from .events import EventType, event_season, event_type_of
from .grouping import is_female, is_hobby
from .settings import Settings


def participant_age(participant: Dict, event: Dict) -> int:
    """Age in the event's season (season year minus birth year)."""
    birth_year = participant.get("birth_year")
    try:
        return event_season(event) - int(birth_year)
    except (TypeError, ValueError):
        raise InvalidInputError(
            f"Participant {participant.get('id')!r} has invalid birth_year {birth_year!r}"
        ) from None


def calculate_handicap(participant: Dict, result: Dict, event: Dict, settings: Settings) -> float:
    """Return the signed time adjustment in seconds for one result.

    Bonuses are conventionally negative and penalties positive; the value is
    added to the raw time to get the time that is ranked. Each rule only
    contributes when enabled:

    * age brackets matching the participant's age in the event season,
    * the female bonus,
    * the hobby bonus for A/B riders,
    * the aero bar and TT equipment penalties for the result's material flags.

    Mass-start handicap events are placed by start group, not by time, so
    the adjustment there is always zero.
    """
    if event_type_of(event) is EventType.HANDICAP:
        return 0

    total = 0
    age = participant_age(participant, event)
    for bracket in settings.age_brackets:
        if bracket.matches(age):
            total += bracket.seconds

    if is_female(participant):
        total += settings.female.contribution
    if is_hobby(participant):
        total += settings.hobby.contribution

    if result.get("has_aero_bars"):
        total += settings.aero_bars.contribution
    if result.get("has_tt_equipment"):
        total += settings.tt_equipment.contribution
    return total


def valid_time(result: Optional[Dict]) -> Optional[float]:
    """Raw time of a finisher, or ``None`` for DNFs and missing/zero times.

    Raises:
        InvalidInputError: if a finisher's time is present but not a number.
    """
    if not result or result.get("dnf"):
        return None
    seconds = result.get("time_seconds")
    if seconds is None:
        return None
    if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
        raise InvalidInputError(f"Result {result.get('id')!r} has invalid time_seconds {seconds!r}")
    if seconds <= 0:
        return None
    return seconds


def adjusted_time(result: Dict, handicap: float) -> Optional[float]:
    """Raw time plus handicap, ``None`` when there is no valid time."""
    seconds = valid_time(result)
    if seconds is None:
        return None
    return seconds + handicap
