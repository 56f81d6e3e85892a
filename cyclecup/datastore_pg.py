"""Read-only PostgreSQL access for loading scoring snapshots.

Expected tables (snake_case columns):

- ``participants(id, first_name, last_name, birth_year, perf_class, gender)``
- ``events(id, name, date, location, event_type, notes, finished, season)``
- ``results(id, event_id, participant_id, time_seconds, dnf, winner_rank,
  finisher_group, has_aero_bars, has_tt_equipment, points)``
- ``teams(id, event_id, name)`` and ``team_members(id, team_id,
  participant_id, penalty_minus2)``
- ``seasons(year)``
- ``settings(id = 1, data)`` and ``season_settings(season, data)`` where
  ``data`` holds the settings JSON document.
"""

import json
import os
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor


_POOL: Optional[pg_pool.AbstractConnectionPool] = None


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Common connection kwargs: connect_timeout + TCP keepalives.

    Defaults:
      - connect_timeout: 10 seconds (overridable via DB_CONNECT_TIMEOUT)
      - keepalives: enabled unless DB_KEEPALIVES=0/false
      - DB_KEEPALIVES_IDLE/INTERVAL/COUNT applied when set
    """
    kwargs: Dict[str, Any] = {"connect_timeout": _env_int("DB_CONNECT_TIMEOUT", 10)}
    ka_env = os.environ.get("DB_KEEPALIVES")
    kwargs["keepalives"] = 0 if ka_env is not None and ka_env.lower() in ("0", "false") else 1
    for env_name, key in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        value = _env_int(env_name)
        if value is not None:
            kwargs[key] = value
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Initialize a global connection pool using DATABASE_URL.

    Safe to call multiple times; subsequent calls are ignored once a pool exists.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        # Leave _POOL as None; callers will fall back to direct connections
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _ping(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
        return True
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False


@contextmanager
def _get_conn():
    """Yield a connection from the pool if available, else a direct one.

    A pooled connection that fails a ``SELECT 1`` ping is discarded and the
    checkout retried once.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is None:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            yield conn
        finally:
            conn.close()
        return

    conn = _POOL.getconn()
    if not _ping(conn):
        _POOL.putconn(conn, close=True)
        conn = _POOL.getconn()
        if not _ping(conn):
            _POOL.putconn(conn, close=True)
            raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
    try:
        yield conn
    finally:
        # status 1 = active, 2 = intrans, 3 = inerror
        if getattr(conn, "closed", 0) == 0 and getattr(conn, "status", 0) in (1, 2, 3):
            conn.rollback()
        _POOL.putconn(conn)


def _json_value(raw: Any) -> Optional[Dict[str, Any]]:
    # jsonb columns arrive decoded, text columns as strings
    if raw is None:
        return None
    if isinstance(raw, (bytes, str)):
        return json.loads(raw)
    return raw


def _fetch_all(sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, params)
        return [dict(row) for row in cur.fetchall()]


def _fetch_one(sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
        return dict(row) if row else None


_EVENT_COLUMNS = "id, name, date::text AS date, location, event_type, notes, finished, season"


def get_global_settings() -> Optional[Dict[str, Any]]:
    row = _fetch_one("SELECT data FROM settings WHERE id = 1")
    return _json_value(row["data"]) if row else None


def get_season_settings(season: int) -> Optional[Dict[str, Any]]:
    row = _fetch_one("SELECT data FROM season_settings WHERE season = %s", (int(season),))
    return _json_value(row["data"]) if row else None


def list_seasons() -> List[int]:
    # A season exists once created, even before its first event
    rows = _fetch_all(
        "SELECT year AS season FROM seasons UNION SELECT season FROM events ORDER BY season DESC"
    )
    return [int(r["season"]) for r in rows]


def find_event(event_id: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = %s", (event_id,))


def load_season(season: int) -> Dict[str, List[Dict[str, Any]]]:
    """Load a consistent snapshot of everything needed to score one season.

    All queries run on one connection inside one transaction.
    """
    season = int(season)
    snapshot: Dict[str, List[Dict[str, Any]]] = {}
    queries = {
        "events": (f"SELECT {_EVENT_COLUMNS} FROM events WHERE season = %s ORDER BY date, id", (season,)),
        "participants": (
            "SELECT id, first_name, last_name, birth_year, perf_class, gender FROM participants ORDER BY id",
            (),
        ),
        "results": (
            "SELECT r.id, r.event_id, r.participant_id, r.time_seconds, r.dnf, r.winner_rank,"
            " r.finisher_group, r.has_aero_bars, r.has_tt_equipment, r.points"
            " FROM results r JOIN events e ON e.id = r.event_id WHERE e.season = %s ORDER BY r.event_id, r.id",
            (season,),
        ),
        "teams": (
            "SELECT t.id, t.event_id, t.name FROM teams t JOIN events e ON e.id = t.event_id"
            " WHERE e.season = %s ORDER BY t.event_id, t.id",
            (season,),
        ),
        "team_members": (
            "SELECT m.id, m.team_id, m.participant_id, m.penalty_minus2 FROM team_members m"
            " JOIN teams t ON t.id = m.team_id JOIN events e ON e.id = t.event_id"
            " WHERE e.season = %s ORDER BY m.team_id, m.id",
            (season,),
        ),
    }
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
        for key, (sql, params) in queries.items():
            cur.execute(sql, params)
            snapshot[key] = [dict(row) for row in cur.fetchall()]
        conn.rollback()
    return snapshot
