"""Competition groups: who is ranked against whom."""

from __future__ import annotations

import json
from enum import Enum
from typing import Dict, Iterable, List

from .errors import InvalidInputError

PERF_CLASSES = ("A", "B", "C", "D")
HOBBY_CLASSES = frozenset({"A", "B"})

_FEMALE = frozenset({"w", "f"})
_MALE = frozenset({"m"})


class GroupLabel(str, Enum):
    HOBBY = "Hobby"
    AMBITIOUS = "Ambitioniert"
    WOMEN = "Frauen"


GROUP_ORDER = (GroupLabel.HOBBY, GroupLabel.AMBITIOUS, GroupLabel.WOMEN)


def perf_class_of(participant: Dict) -> str:
    perf_class = str(participant.get("perf_class") or "").strip().upper()
    if perf_class not in PERF_CLASSES:
        raise InvalidInputError(
            f"Participant {participant.get('id')!r} has unknown perf_class {participant.get('perf_class')!r}"
        )
    return perf_class


def is_female(participant: Dict) -> bool:
    gender = str(participant.get("gender") or "").strip().lower()
    if gender in _FEMALE:
        return True
    if gender in _MALE:
        return False
    raise InvalidInputError(
        f"Participant {participant.get('id')!r} has unknown gender {participant.get('gender')!r}"
    )


def is_hobby(participant: Dict) -> bool:
    return perf_class_of(participant) in HOBBY_CLASSES


def participant_name(participant: Dict) -> str:
    """Display name used for ordering ties: ``"First Last"``."""
    if participant.get("name"):
        return str(participant["name"])
    first = participant.get("first_name") or ""
    last = participant.get("last_name") or ""
    return f"{first} {last}".strip()


def get_participant_group(participant: Dict) -> GroupLabel:
    """Return the group a participant competes in.

    Women form their own group regardless of class; men are split into
    Hobby (A/B) and Ambitious (C/D). Both fields are validated even when
    the first already decides the group.
    """
    perf_class = perf_class_of(participant)
    if is_female(participant):
        return GroupLabel.WOMEN
    if perf_class in HOBBY_CLASSES:
        return GroupLabel.HOBBY
    return GroupLabel.AMBITIOUS


def group_participants(participants: Iterable[Dict]) -> Dict[GroupLabel, List[Dict]]:
    """Partition participants into the three groups (all keys always present)."""
    groups: Dict[GroupLabel, List[Dict]] = {label: [] for label in GROUP_ORDER}
    for participant in participants:
        groups[get_participant_group(participant)].append(participant)
    return groups


def parse_event_notes(event: Dict) -> Dict[GroupLabel, str]:
    """Decode the per-group notes stored on an event as a JSON object."""
    raw = event.get("notes")
    if not raw:
        return {}
    if isinstance(raw, dict):
        decoded = raw
    else:
        try:
            decoded = json.loads(raw)
        except ValueError as exc:
            raise InvalidInputError(f"Event {event.get('id')!r} has malformed notes: {exc}") from exc
    if not isinstance(decoded, dict):
        raise InvalidInputError(f"Event {event.get('id')!r} notes must be a JSON object")
    notes: Dict[GroupLabel, str] = {}
    for key, text in decoded.items():
        try:
            label = GroupLabel(key)
        except ValueError as exc:
            raise InvalidInputError(f"Event {event.get('id')!r} notes use unknown group {key!r}") from exc
        if text:
            notes[label] = str(text)
    return notes
