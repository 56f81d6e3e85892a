import copy

import pytest


@pytest.fixture()
def memory_store():
    # Minimal in-memory snapshot compatible with the PostgreSQL row shapes
    store = {
        "settings": {
            "version": 3,
            "winner_points": [3, 2, 1],
            "handicap_base_points": {"A": 5, "B": 6, "C": 7, "D": 8},
            "finisher_group_penalty": 1,
            "drop_scores": 1,
            "closed_seasons": [2024],
            "time_trial_bonuses": {
                "aero_bars": {"enabled": True, "seconds": 30},
                "tt_equipment": {"enabled": False, "seconds": 30},
            },
            "handicap_settings": {
                "gender": {"female": {"enabled": True, "seconds": -120}},
                "perf_class": {"hobby": {"enabled": True, "seconds": -45}},
                "age_brackets": [
                    {"min_age": 40, "max_age": 49, "enabled": True, "seconds": -60},
                ],
            },
        },
        "season_settings": {},
        "seasons": [2024, 2025, 2026],
        "participants": [
            {"id": "p1", "first_name": "Anna", "last_name": "Berg", "birth_year": 1985, "perf_class": "B", "gender": "w"},
            {"id": "p2", "first_name": "Ben", "last_name": "Carl", "birth_year": 1990, "perf_class": "C", "gender": "m"},
            {"id": "p3", "first_name": "Dirk", "last_name": "Eck", "birth_year": 1992, "perf_class": "D", "gender": "m"},
            {"id": "p4", "first_name": "Fritz", "last_name": "Gold", "birth_year": 1970, "perf_class": "A", "gender": "m"},
        ],
        "events": [
            {"id": "e1", "name": "Auftakt", "date": "2025-04-05", "event_type": "EZF", "season": 2025,
             "finished": True, "notes": '{"Hobby": "Kurze Runde"}'},
            {"id": "e2", "name": "Team", "date": "2025-05-10", "event_type": "MZF", "season": 2025,
             "finished": True, "notes": ""},
            {"id": "e3", "name": "Finale", "date": "2025-09-20", "event_type": "Handicap", "season": 2025,
             "finished": False, "notes": None},
        ],
        "results": [
            {"id": "r1", "event_id": "e1", "participant_id": "p1", "time_seconds": 1800, "dnf": False},
            {"id": "r2", "event_id": "e1", "participant_id": "p2", "time_seconds": 1700, "dnf": False},
            {"id": "r3", "event_id": "e1", "participant_id": "p3", "time_seconds": 1650, "dnf": False, "winner_rank": 1},
            {"id": "r4", "event_id": "e1", "participant_id": "p4", "time_seconds": None, "dnf": True},
            {"id": "r5", "event_id": "e2", "participant_id": "p2", "time_seconds": 2000, "dnf": False},
            {"id": "r6", "event_id": "e2", "participant_id": "p3", "time_seconds": 2100, "dnf": False},
            {"id": "r7", "event_id": "e2", "participant_id": "p4", "time_seconds": 2300, "dnf": False},
            {"id": "r8", "event_id": "e3", "participant_id": "p2", "dnf": False, "finisher_group": 1},
        ],
        "teams": [
            {"id": "t1", "event_id": "e2", "name": "Kette rechts"},
        ],
        "team_members": [
            {"id": "m1", "team_id": "t1", "participant_id": "p2", "penalty_minus2": False},
            {"id": "m2", "team_id": "t1", "participant_id": "p3", "penalty_minus2": False},
            {"id": "m3", "team_id": "t1", "participant_id": "p4", "penalty_minus2": False},
        ],
    }
    return store


@pytest.fixture(autouse=True)
def patch_datastore(monkeypatch, memory_store):
    # Patch cyclecup.datastore_pg with in-memory implementations.
    import cyclecup.datastore_pg as pg

    def init_pool(minconn=1, maxconn=10):
        return None

    def get_global_settings():
        return copy.deepcopy(memory_store.get("settings"))

    def get_season_settings(season):
        return copy.deepcopy(memory_store["season_settings"].get(int(season)))

    def list_seasons():
        seasons = set(memory_store["seasons"]) | {int(e["season"]) for e in memory_store["events"]}
        return sorted(seasons, reverse=True)

    def find_event(event_id):
        for event in memory_store["events"]:
            if event["id"] == event_id:
                return copy.deepcopy(event)
        return None

    def load_season(season):
        events = [e for e in memory_store["events"] if int(e["season"]) == int(season)]
        event_ids = {e["id"] for e in events}
        teams = [t for t in memory_store["teams"] if t["event_id"] in event_ids]
        team_ids = {t["id"] for t in teams}
        return copy.deepcopy(
            {
                "events": events,
                "participants": memory_store["participants"],
                "results": [r for r in memory_store["results"] if r["event_id"] in event_ids],
                "teams": teams,
                "team_members": [m for m in memory_store["team_members"] if m["team_id"] in team_ids],
            }
        )

    monkeypatch.setattr(pg, "init_pool", init_pool)
    monkeypatch.setattr(pg, "get_global_settings", get_global_settings)
    monkeypatch.setattr(pg, "get_season_settings", get_season_settings)
    monkeypatch.setattr(pg, "list_seasons", list_seasons)
    monkeypatch.setattr(pg, "find_event", find_event)
    monkeypatch.setattr(pg, "load_season", load_season)
    yield
