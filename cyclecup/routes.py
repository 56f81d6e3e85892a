from enum import Enum
import math
import os

from flask import Blueprint, abort, current_app, request

from . import datastore_pg as ds
from .errors import ScoringError
from .events import EventType, event_season, event_type_of, season_events
from .grouping import parse_event_notes
from .scoring import calculate_overall_standings, rank_teams, score_season
from .settings import is_season_closed, resolve_settings, resolve_settings_with_source


bp = Blueprint('main', __name__)


def _json_safe(value):
    """Make engine output strict-JSON friendly (enum keys, infinite times)."""
    if isinstance(value, dict):
        return {(k.value if isinstance(k, Enum) else k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float) and math.isinf(value):
        return None
    return value


def _season_settings(season: int):
    return resolve_settings_with_source(ds.get_season_settings(season), ds.get_global_settings())


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="Expected a JSON object body.")
    return payload


@bp.errorhandler(ScoringError)
def scoring_error(exc):
    current_app.logger.error("scoring_error path=%s error=%s", request.path, exc)
    return {'error': str(exc)}, 500


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status.
    """
    url = os.environ.get('DATABASE_URL')
    if not url:
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set; stored seasons are unavailable.'
        }
    try:
        with ds._get_conn() as conn, conn.cursor() as cur:
            cur.execute('SELECT current_user, current_database(), version()')
            user, db, ver = cur.fetchone()
        return {
            'connected': True,
            'status': 'ok',
            'user': user,
            'database': db,
            'server_version': (ver or '').split('\n')[0],
        }
    except Exception as e:  # pragma: no cover - best-effort health output
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }


@bp.route('/api/seasons')
def seasons():
    rows = []
    for season in ds.list_seasons():
        settings, _source = _season_settings(season)
        rows.append({'season': season, 'closed': is_season_closed(settings, season)})
    return {'seasons': rows}


@bp.route('/api/seasons/<int:season>/settings')
def season_settings(season):
    settings, source = _season_settings(season)
    return {
        'season': season,
        'source': source,
        'closed': is_season_closed(settings, season),
        'settings': settings.to_dict(),
    }


@bp.route('/api/events/<event_id>/results')
def event_results(event_id):
    """Scored results of one stored event (all zero while it is unfinished)."""
    event = ds.find_event(event_id)
    if not event:
        abort(404)
    season = event_season(event)
    settings, _source = _season_settings(season)
    snapshot = ds.load_season(season)
    results = [r for r in snapshot['results'] if r.get('event_id') == event.get('id')]
    scored = score_season(
        [event], results, snapshot['participants'], snapshot['teams'], snapshot['team_members'], settings
    )
    payload = {
        'event': event,
        'notes': parse_event_notes(event),
        'results': scored,
    }
    if event_type_of(event) is EventType.MZF:
        payload['teams'] = rank_teams(
            event, results, snapshot['participants'], snapshot['teams'], snapshot['team_members'], settings
        )
    current_app.logger.info(
        "event_results event=%s type=%s finished=%s results=%d",
        event.get('id'), event.get('event_type'), bool(event.get('finished')), len(scored),
    )
    return _json_safe(payload)


@bp.route('/api/seasons/<int:season>/standings')
def season_standings(season):
    settings, source = _season_settings(season)
    snapshot = ds.load_season(season)
    events = season_events(snapshot['events'], season)
    scored = score_season(
        events, snapshot['results'], snapshot['participants'], snapshot['teams'], snapshot['team_members'], settings
    )
    table = calculate_overall_standings(scored, snapshot['participants'], events, settings)
    finished = [e for e in events if e.get('finished')]
    current_app.logger.info(
        "season_standings season=%s events=%d finished=%d results=%d rows=%d settings=%s",
        season, len(events), len(finished), len(scored), sum(len(rows) for rows in table.values()), source,
    )
    return _json_safe({
        'season': season,
        'closed': is_season_closed(settings, season),
        'drop_scores': settings.drop_scores,
        'events': finished,
        'standings': table,
    })


@bp.route('/api/score/event', methods=['POST'])
def score_event():
    """Score a posted snapshot of one event without touching the database."""
    payload = _json_payload()
    event = payload.get('event')
    if not isinstance(event, dict):
        abort(400, description="Missing 'event' object.")
    settings = resolve_settings(payload.get('settings'))
    # A posted event counts as finished unless it says otherwise.
    event = {**event, 'finished': event.get('finished', True)}
    results = [
        {**r, 'event_id': event.get('id')}
        for r in payload.get('results') or []
        if r.get('event_id') in (None, event.get('id'))
    ]
    participants = payload.get('participants') or []
    teams = payload.get('teams') or []
    members = payload.get('team_members') or []
    scored = score_season([event], results, participants, teams, members, settings)
    body = {'results': scored}
    if event_type_of(event) is EventType.MZF:
        body['teams'] = rank_teams(event, results, participants, teams, members, settings)
    current_app.logger.info("score_event event=%s results=%d", event.get('id'), len(scored))
    return _json_safe(body)


@bp.route('/api/score/standings', methods=['POST'])
def score_standings():
    """Standings for posted, already scored results."""
    payload = _json_payload()
    settings = resolve_settings(payload.get('settings'))
    results = payload.get('results') or []
    table = calculate_overall_standings(results, payload.get('participants') or [], payload.get('events') or [], settings)
    current_app.logger.info(
        "score_standings results=%d rows=%d", len(results), sum(len(rows) for rows in table.values())
    )
    return _json_safe({'standings': table})
