"""Scoring utilities: per-event points and season standings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidInputError
from .events import EventType, event_type_of
from .grouping import (
    GROUP_ORDER,
    GroupLabel,
    get_participant_group,
    participant_name,
    perf_class_of,
)
from .handicap import adjusted_time, calculate_handicap, valid_time
from .settings import DEFAULT_SETTINGS, Settings

# (highest rank in band, points); ranks past the last band get the default.
PLACEMENT_BANDS = ((10, 8), (20, 7), (30, 6))
PLACEMENT_DEFAULT = 5

WINNER_RANKS = (1, 2, 3)


def placement_points(rank: int) -> int:
    """Return the base points for a time-trial or team placing."""
    for last_rank, points in PLACEMENT_BANDS:
        if rank <= last_rank:
            return points
    return PLACEMENT_DEFAULT


def _as_settings(settings: Any) -> Settings:
    if settings is None:
        return DEFAULT_SETTINGS
    if isinstance(settings, Settings):
        return settings
    return Settings.from_dict(settings)


def _winner_rank(result: Dict) -> Optional[int]:
    raw = result.get("winner_rank")
    if raw in (None, 0, ""):
        return None
    try:
        rank = int(raw)
    except (TypeError, ValueError):
        rank = None
    if rank not in WINNER_RANKS:
        raise InvalidInputError(f"Result {result.get('id')!r} has invalid winner_rank {raw!r}")
    return rank


def _finisher_group(result: Dict) -> int:
    raw = result.get("finisher_group")
    if raw is None:
        return 1
    try:
        group = int(raw)
    except (TypeError, ValueError):
        group = 0
    if group < 1:
        raise InvalidInputError(f"Result {result.get('id')!r} has invalid finisher_group {raw!r}")
    return group


def _name_key(participant: Dict) -> Tuple[str, str]:
    return participant_name(participant), str(participant.get("id"))


def _belongs_to(record: Dict, event: Dict) -> bool:
    event_id = record.get("event_id")
    return event_id is None or event_id == event.get("id")


@dataclass(frozen=True)
class ScoringContext:
    """Everything a discipline scorer may need besides the event and its results."""

    participants: Dict[Any, Dict]
    teams: Tuple[Dict, ...]
    team_members: Tuple[Dict, ...]
    settings: Settings

    @classmethod
    def build(
        cls,
        participants: Iterable[Dict],
        teams: Iterable[Dict] = (),
        team_members: Iterable[Dict] = (),
        settings: Any = None,
    ) -> "ScoringContext":
        return cls(
            participants={p.get("id"): p for p in participants},
            teams=tuple(teams or ()),
            team_members=tuple(team_members or ()),
            settings=_as_settings(settings),
        )

    def participant(self, participant_id: Any) -> Dict:
        try:
            return self.participants[participant_id]
        except KeyError:
            raise InvalidInputError(f"Result references unknown participant {participant_id!r}") from None


def _scored(result: Dict, **fields: Any) -> Dict:
    row = {
        **result,
        "points": 0,
        "rank": None,
        "adjusted_time_seconds": None,
        "handicap_seconds": None,
    }
    row.update(fields)
    return row


def _score_time_trial(event: Dict, results: List[Dict], context: ScoringContext) -> List[Dict]:
    """Individual and mountain time trials: rank on adjusted time."""
    settings = context.settings
    ranked: List[Tuple[Dict, Dict]] = []
    unranked: List[Tuple[Dict, Dict]] = []
    for result in results:
        participant = context.participant(result.get("participant_id"))
        _winner_rank(result)
        handicap = calculate_handicap(participant, result, event, settings)
        row = _scored(
            result,
            group=get_participant_group(participant).value,
            handicap_seconds=handicap,
            adjusted_time_seconds=adjusted_time(result, handicap),
        )
        if row["adjusted_time_seconds"] is None:
            unranked.append((participant, row))
        else:
            ranked.append((participant, row))

    ranked.sort(key=lambda item: (item[1]["adjusted_time_seconds"], *_name_key(item[0])))
    for rank, (_participant, row) in enumerate(ranked, start=1):
        row["rank"] = rank
        row["points"] = placement_points(rank) + settings.winner_bonus(_winner_rank(row))

    unranked.sort(key=lambda item: _name_key(item[0]))
    return [row for _p, row in ranked] + [row for _p, row in unranked]


def _rank_teams(event: Dict, results: List[Dict], context: ScoringContext) -> List[Dict]:
    settings = context.settings
    by_participant = {r.get("participant_id"): r for r in results}
    rows: List[Dict] = []
    for team in context.teams:
        if not _belongs_to(team, event):
            continue
        members = [m for m in context.team_members if m.get("team_id") == team.get("id")]
        times: List[float] = []
        total_handicap = 0
        for member in members:
            result = by_participant.get(member.get("participant_id"))
            if result is None:
                continue
            participant = context.participant(member.get("participant_id"))
            # Every member with a result counts towards the team handicap,
            # finished or not.
            total_handicap += calculate_handicap(participant, result, event, settings)
            seconds = valid_time(result)
            if seconds is not None:
                times.append(seconds)
        times.sort()
        if len(times) < 2:
            base_time = None
            team_time = math.inf
        else:
            # Timed on the second-slowest finisher: all but the slowest count.
            base_time = times[max(0, len(times) - 2)]
            team_time = base_time + total_handicap
        rows.append(
            {
                "team_id": team.get("id"),
                "name": team.get("name") or "",
                "member_ids": [m.get("participant_id") for m in members],
                "valid_finishers": len(times),
                "base_time_seconds": base_time,
                "handicap_seconds": total_handicap,
                "adjusted_time_seconds": team_time,
                "rank": None,
                "points": 0,
            }
        )

    rows.sort(key=lambda r: (r["adjusted_time_seconds"], r["name"], str(r["team_id"])))
    rank = 0
    for row in rows:
        if math.isinf(row["adjusted_time_seconds"]):
            continue
        rank += 1
        row["rank"] = rank
        row["points"] = placement_points(rank) + settings.winner_bonus(rank)
    return rows


def _score_team_time_trial(event: Dict, results: List[Dict], context: ScoringContext) -> List[Dict]:
    """Team time trial: every member carries the team's rank and points."""
    teams = _rank_teams(event, results, context)
    team_of: Dict[Any, Dict] = {}
    for team in teams:
        for member_id in team["member_ids"]:
            team_of.setdefault(member_id, team)
    team_order = {team["team_id"]: idx for idx, team in enumerate(teams)}

    rows: List[Tuple[Tuple, Dict]] = []
    for result in results:
        participant = context.participant(result.get("participant_id"))
        _winner_rank(result)
        team = team_of.get(result.get("participant_id"))
        handicap = calculate_handicap(participant, result, event, context.settings)
        fields: Dict[str, Any] = {
            "group": get_participant_group(participant).value,
            "handicap_seconds": handicap,
            "team_id": None,
            "team_name": None,
        }
        if team is not None:
            fields.update(
                team_id=team["team_id"],
                team_name=team["name"],
                rank=team["rank"],
                points=team["points"],
                adjusted_time_seconds=team["adjusted_time_seconds"],
            )
            order = team_order[team["team_id"]]
        else:
            order = len(teams)
        rows.append(((order, *_name_key(participant)), _scored(result, **fields)))
    rows.sort(key=lambda item: item[0])
    return [row for _key, row in rows]


def _handicap_race_points(participant: Dict, result: Dict, settings: Settings) -> float:
    base = settings.handicap_base_points.get(perf_class_of(participant), 0)
    reduction = settings.finisher_group_penalty * (_finisher_group(result) - 1)
    return max(0, base - reduction)


def _score_handicap(event: Dict, results: List[Dict], context: ScoringContext) -> List[Dict]:
    """Mass-start handicap race, placed independently within each group."""
    settings = context.settings
    by_group: Dict[GroupLabel, List[Tuple[Dict, Dict]]] = {label: [] for label in GROUP_ORDER}
    for result in results:
        participant = context.participant(result.get("participant_id"))
        by_group[get_participant_group(participant)].append((participant, result))

    scored: List[Dict] = []
    for label in GROUP_ORDER:
        finishers: List[Tuple[Tuple, Dict]] = []
        dnfs: List[Tuple[Tuple, Dict]] = []
        for participant, result in by_group[label]:
            winner_rank = _winner_rank(result)
            if result.get("dnf"):
                dnfs.append((_name_key(participant), _scored(result, group=label.value, handicap_seconds=0)))
                continue
            points = _handicap_race_points(participant, result, settings) + settings.winner_bonus(winner_rank)
            row = _scored(result, group=label.value, handicap_seconds=0, points=points)
            # Points are computed first; the display order then puts manually
            # placed winners ahead of everyone else.
            key = (0 if winner_rank else 1, winner_rank or 0, -points, *_name_key(participant))
            finishers.append((key, row))
        finishers.sort(key=lambda item: item[0])
        for rank, (_key, row) in enumerate(finishers, start=1):
            row["rank"] = rank
        dnfs.sort(key=lambda item: item[0])
        scored.extend(row for _key, row in finishers)
        scored.extend(row for _key, row in dnfs)
    return scored


EventScorer = Callable[[Dict, List[Dict], ScoringContext], List[Dict]]

SCORERS: Dict[EventType, EventScorer] = {
    EventType.EZF: _score_time_trial,
    EventType.BZF: _score_time_trial,
    EventType.MZF: _score_team_time_trial,
    EventType.HANDICAP: _score_handicap,
}


def calculate_points_for_event(
    event: Dict,
    results: Iterable[Dict],
    participants: Iterable[Dict],
    teams: Iterable[Dict] = (),
    team_members: Iterable[Dict] = (),
    settings: Any = None,
) -> List[Dict]:
    """Score one finished event.

    Results belonging to other events are ignored. The input dictionaries
    are not modified; each returned row is a copy of its result with
    ``points``, ``rank`` (``None`` when unranked), ``adjusted_time_seconds``,
    ``handicap_seconds`` and ``group`` filled in. Team time trial rows also
    carry ``team_id`` and ``team_name``.

    Callers are responsible for giving unfinished events zero points; see
    :func:`score_season`.

    Raises:
        InvalidInputError: for unknown event types, perf classes or genders,
            invalid winner ranks or finisher groups, or results of unknown
            participants.
    """
    scorer = SCORERS[event_type_of(event)]
    context = ScoringContext.build(participants, teams, team_members, settings)
    event_results = [r for r in results if _belongs_to(r, event)]
    return scorer(event, event_results, context)


def rank_teams(
    event: Dict,
    results: Iterable[Dict],
    participants: Iterable[Dict],
    teams: Iterable[Dict],
    team_members: Iterable[Dict],
    settings: Any = None,
) -> List[Dict]:
    """Return the team table of a team time trial.

    Teams with fewer than two valid finishers have an infinite adjusted time,
    no rank and zero points but are still listed, after the ranked teams.
    """
    context = ScoringContext.build(participants, teams, team_members, settings)
    event_results = [r for r in results if _belongs_to(r, event)]
    return _rank_teams(event, event_results, context)


def score_season(
    events: Iterable[Dict],
    results: Iterable[Dict],
    participants: Iterable[Dict],
    teams: Iterable[Dict] = (),
    team_members: Iterable[Dict] = (),
    settings: Any = None,
) -> List[Dict]:
    """Score every event of a season, zeroing the results of unfinished ones.

    Returns:
        One flat list of scored results, event by event in the given order.
    """
    settings = _as_settings(settings)
    participants = list(participants)
    teams = list(teams or ())
    team_members = list(team_members or ())
    results = list(results)

    scored: List[Dict] = []
    for event in events:
        event_results = [r for r in results if r.get("event_id") == event.get("id")]
        if event.get("finished") and event_results:
            scored.extend(
                calculate_points_for_event(event, event_results, participants, teams, team_members, settings)
            )
        else:
            scored.extend({**r, "points": 0, "rank": None} for r in event_results)
    return scored


def _event_order_key(event: Dict) -> Tuple[str, str]:
    return event.get("date") or "", str(event.get("id"))


def _standing_sort_key(row: Dict) -> Tuple:
    return (
        -row["final_points"],
        tuple(-count for count in row["tie_breaker_scores"]),
        row["participant_name"],
        str(row["participant_id"]),
    )


def calculate_overall_standings(
    results: Iterable[Dict],
    participants: Iterable[Dict],
    events: Iterable[Dict],
    settings: Any = None,
) -> Dict[GroupLabel, List[Dict]]:
    """Aggregate scored results into season standings per group.

    Only results of finished events count, one entry per participant and
    event. With ``drop_scores = k`` a participant with ``n`` entries has
    their ``min(k, n - 1)`` lowest entries marked ``is_dropped`` and left
    out of ``final_points``; a single result is never dropped.

    Within a group rows are ordered by descending ``final_points``, then by
    ``tie_breaker_scores`` (count of first places, second places, ...,
    compared left to right), then by name and id, so no two rows tie.

    Returns:
        Mapping of every group label to its ordered standings (possibly empty).
    """
    settings = _as_settings(settings)
    finished = {e.get("id"): e for e in events if e.get("finished")}
    people = {p.get("id"): p for p in participants}

    entries: Dict[Any, Dict[Any, Dict]] = {}
    max_rank = 0
    for result in results:
        event = finished.get(result.get("event_id"))
        if event is None:
            continue
        participant_id = result.get("participant_id")
        if participant_id not in people:
            raise InvalidInputError(f"Result references unknown participant {participant_id!r}")
        per_event = entries.setdefault(participant_id, {})
        if event.get("id") in per_event:
            raise InvalidInputError(
                f"Participant {participant_id!r} has more than one result for event {event.get('id')!r}"
            )
        rank = result.get("rank")
        rank = rank if isinstance(rank, int) and not isinstance(rank, bool) and rank >= 1 else None
        if rank is not None:
            max_rank = max(max_rank, rank)
        per_event[event.get("id")] = {
            "event_id": event.get("id"),
            "points": result.get("points") or 0,
            "rank": rank,
            "is_dropped": False,
        }

    standings: Dict[GroupLabel, List[Dict]] = {label: [] for label in GROUP_ORDER}
    for participant_id, per_event in entries.items():
        participant = people[participant_id]
        season_results = sorted(per_event.values(), key=lambda e: _event_order_key(finished[e["event_id"]]))

        drop_count = min(settings.drop_scores, max(0, len(season_results) - 1))
        worst_first = sorted(
            season_results,
            key=lambda e: (e["points"], *_event_order_key(finished[e["event_id"]])),
        )
        for entry in worst_first[:drop_count]:
            entry["is_dropped"] = True

        tie_breakers = [0] * max_rank
        for entry in season_results:
            if entry["rank"] is not None:
                tie_breakers[entry["rank"] - 1] += 1

        group = get_participant_group(participant)
        standings[group].append(
            {
                "participant_id": participant_id,
                "participant_name": participant_name(participant),
                "perf_class": perf_class_of(participant),
                "group": group.value,
                "final_points": sum(e["points"] for e in season_results if not e["is_dropped"]),
                "results": season_results,
                "tie_breaker_scores": tie_breakers,
                "event_count": len(season_results),
            }
        )

    for rows in standings.values():
        rows.sort(key=_standing_sort_key)
        for position, row in enumerate(rows, start=1):
            row["position"] = position
    return standings
