import pytest

from cyclecup.errors import InvalidInputError
from cyclecup.grouping import (
    GROUP_ORDER,
    GroupLabel,
    get_participant_group,
    group_participants,
    parse_event_notes,
    participant_name,
)


@pytest.mark.parametrize(
    "gender, perf_class, expected",
    [
        ("w", "A", GroupLabel.WOMEN),
        ("w", "D", GroupLabel.WOMEN),
        ("F", "C", GroupLabel.WOMEN),
        ("m", "A", GroupLabel.HOBBY),
        ("m", "B", GroupLabel.HOBBY),
        ("M", "C", GroupLabel.AMBITIOUS),
        ("m", "D", GroupLabel.AMBITIOUS),
    ],
)
def test_group_membership(gender, perf_class, expected):
    assert get_participant_group({"id": "x", "gender": gender, "perf_class": perf_class}) is expected


def test_unknown_perf_class_fails_even_for_women():
    with pytest.raises(InvalidInputError):
        get_participant_group({"id": "x", "gender": "w", "perf_class": "E"})


def test_unknown_gender_fails():
    with pytest.raises(InvalidInputError):
        get_participant_group({"id": "x", "gender": "x", "perf_class": "A"})


def test_group_participants_keeps_empty_groups():
    groups = group_participants([{"id": 1, "gender": "m", "perf_class": "C"}])
    assert list(groups) == list(GROUP_ORDER)
    assert [p["id"] for p in groups[GroupLabel.AMBITIOUS]] == [1]
    assert groups[GroupLabel.HOBBY] == []
    assert groups[GroupLabel.WOMEN] == []


def test_participant_name():
    assert participant_name({"first_name": "Anna", "last_name": "Berg"}) == "Anna Berg"
    assert participant_name({"name": "Team Rider"}) == "Team Rider"


def test_parse_event_notes():
    notes = parse_event_notes({"id": "e1", "notes": '{"Hobby": "Kurze Runde", "Frauen": ""}'})
    assert notes == {GroupLabel.HOBBY: "Kurze Runde"}
    assert parse_event_notes({"id": "e1", "notes": ""}) == {}
    assert parse_event_notes({"id": "e1"}) == {}


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"Senioren": "x"}'])
def test_parse_event_notes_rejects_bad_payloads(raw):
    with pytest.raises(InvalidInputError):
        parse_event_notes({"id": "e1", "notes": raw})
