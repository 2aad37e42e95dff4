"""
PostgreSQL-backed submission store used by the slideshow engine.

Tables read/written here (owned by the wider webapp):

    submissions(
        id TEXT PRIMARY KEY, event_id TEXT, event_ids TEXT[],
        final_image_url TEXT, image_url TEXT,
        final_width INT, final_height INT, original_width INT, original_height INT,
        is_archived BOOLEAN, hidden_from_events TEXT[],
        play_count INT, play_counts_by_slideshow JSONB, last_played_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ
    )
    slideshows(
        slideshow_id TEXT PRIMARY KEY, event_id TEXT, event_name TEXT, name TEXT,
        is_active BOOLEAN, transition_duration_ms INT, fade_duration_ms INT,
        buffer_size INT, refresh_strategy TEXT, square_tolerance REAL,
        created_at TIMESTAMPTZ, updated_at TIMESTAMPTZ
    )
"""
from dataclasses import dataclass, asdict
import logging
import uuid

import psycopg2
import psycopg2.extras

from eventcam.classifier import SQUARE_TOLERANCE
from eventcam.playlist import SubmissionSummary

logger = logging.getLogger(__name__)

REFRESH_STRATEGIES = ('continuous', 'batch')


class StoreError(Exception):
    """Raised when the database cannot be reached or a statement fails."""


class SlideshowNotFound(StoreError):
    pass


class EventNotFound(StoreError):
    pass


@dataclass
class SlideshowSettings:
    slideshow_id: str
    event_id: str
    name: str
    event_name: str = ''
    is_active: bool = True
    transition_duration_ms: int = 5000
    fade_duration_ms: int = 1000
    buffer_size: int = 10
    refresh_strategy: str = 'continuous'
    square_tolerance: float = SQUARE_TOLERANCE

    def to_dict(self):
        return asdict(self)


SETTINGS_COLUMNS = (
    'slideshow_id', 'event_id', 'name', 'event_name', 'is_active',
    'transition_duration_ms', 'fade_duration_ms', 'buffer_size',
    'refresh_strategy', 'square_tolerance',
)
UPDATABLE_COLUMNS = SETTINGS_COLUMNS[2:]


def settings_from_row(row):
    values = {}
    for column in SETTINGS_COLUMNS:
        value = row.get(column)
        if value is not None:
            values[column] = value
    return SlideshowSettings(**values)


BOOLEAN_STRINGS = {'true': True, 'false': False}


def validate_settings(values, current=None):
    """
    Validate a partial settings payload.

    The fade/transition check runs against the payload merged over
    current (or the defaults when creating).

    Returns:
        tuple: (cleaned_values, error_message)
    """
    cleaned = {}
    for key, value in values.items():
        if key not in UPDATABLE_COLUMNS:
            continue
        if key in ('transition_duration_ms', 'fade_duration_ms', 'buffer_size'):
            try:
                value = int(value)
            except (TypeError, ValueError):
                return None, f"{key} must be an integer"
            if value < 0 or (key != 'fade_duration_ms' and value == 0):
                return None, f"{key} must be positive"
        elif key == 'square_tolerance':
            try:
                value = float(value)
            except (TypeError, ValueError):
                return None, "square_tolerance must be a number"
            if not 0 <= value < 1:
                return None, "square_tolerance must be between 0 and 1"
        elif key == 'refresh_strategy':
            if value not in REFRESH_STRATEGIES:
                return None, f"refresh_strategy must be one of: {', '.join(REFRESH_STRATEGIES)}"
        elif key == 'is_active':
            if isinstance(value, str):
                value = BOOLEAN_STRINGS.get(value.strip().lower(), value)
            if not isinstance(value, bool):
                return None, "is_active must be true or false"
        elif not isinstance(value, str) or not value.strip():
            return None, f"{key} must be a non-empty string"
        cleaned[key] = value

    base = current or SlideshowSettings(slideshow_id='', event_id='', name='')
    duration = cleaned.get('transition_duration_ms', base.transition_duration_ms)
    fade = cleaned.get('fade_duration_ms', base.fade_duration_ms)
    if fade > duration:
        return None, "fade_duration_ms cannot exceed transition_duration_ms"
    return cleaned, None


ELIGIBLE_SQL = """
    SELECT
        id,
        COALESCE(final_image_url, image_url) AS image_url,
        COALESCE(NULLIF(final_width, 0), NULLIF(original_width, 0)) AS width,
        COALESCE(NULLIF(final_height, 0), NULLIF(original_height, 0)) AS height,
        COALESCE(play_count, 0) AS play_count,
        created_at
    FROM submissions
    WHERE (event_id = %(event_id)s OR %(event_id)s = ANY(COALESCE(event_ids, '{}')))
      AND NOT COALESCE(is_archived, FALSE)
      AND NOT (%(event_id)s = ANY(COALESCE(hidden_from_events, '{}')))
      AND NOT (id = ANY(%(exclude_ids)s))
    ORDER BY COALESCE(play_count, 0) ASC, created_at ASC
"""

RECORD_PLAYS_SQL = """
    UPDATE submissions
    SET play_count = COALESCE(play_count, 0) + 1,
        play_counts_by_slideshow = jsonb_set(
            COALESCE(play_counts_by_slideshow, '{}'::jsonb),
            ARRAY[%(slideshow_id)s],
            to_jsonb(COALESCE((play_counts_by_slideshow ->> %(slideshow_id)s)::int, 0) + 1)
        ),
        last_played_at = NOW()
    WHERE id = ANY(%(ids)s)
"""


class PostgresSubmissionStore:
    """
    Read/write contract between the slideshow engine and the database.

    A connection is opened per operation so the store can be shared by
    request threads and session worker threads alike.
    """

    def __init__(self, dsn, candidate_limit=None):
        self.dsn = dsn
        self.candidate_limit = candidate_limit

    def _connect(self):
        try:
            return psycopg2.connect(self.dsn)
        except psycopg2.Error as e:
            # Never log the DSN, it carries credentials
            logger.error(f"[STORE] Database connection failed - error_type: {type(e).__name__}, operation: connect")
            raise StoreError("Database connection failed") from e

    def _run(self, operation, sql, params, fetch=None):
        conn = self._connect()
        cursor = None
        try:
            cursor = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cursor.execute(sql, params)
            if fetch == 'all':
                result = cursor.fetchall()
            elif fetch == 'one':
                result = cursor.fetchone()
            else:
                result = cursor.rowcount
            conn.commit()
            return result
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[STORE] Statement failed - error: {str(e).strip()}, operation: {operation}")
            raise StoreError(f"{operation} failed") from e
        finally:
            if cursor is not None:
                cursor.close()
            conn.close()

    # --- slideshow engine contract ---
    def query_eligible(self, event_id, exclude_ids=()):
        """
        Visible submissions for an event, least played first.

        Archived submissions, submissions hidden from this event and any id
        in exclude_ids are filtered out by the query itself.
        """
        sql = ELIGIBLE_SQL
        params = {'event_id': event_id, 'exclude_ids': list(exclude_ids or ())}
        if self.candidate_limit:
            sql += "    LIMIT %(limit)s\n"
            params['limit'] = int(self.candidate_limit)

        rows = self._run('query_eligible', sql, params, fetch='all')
        logger.info(f"[STORE] Eligible submissions loaded - event_id: {event_id}, count: {len(rows)}, excluded: {len(params['exclude_ids'])}, operation: query_eligible")
        return [
            SubmissionSummary(
                id=str(row['id']),
                image_url=row['image_url'],
                width=row['width'] or 0,
                height=row['height'] or 0,
                play_count=row['play_count'] or 0,
                created_at=row['created_at'],
            )
            for row in rows
        ]

    def record_plays(self, submission_ids, slideshow_id):
        """Increment global and per-slideshow play counters. Returns rows updated."""
        ids = [str(i) for i in submission_ids if i]
        if not ids:
            return 0
        updated = self._run(
            'record_plays', RECORD_PLAYS_SQL,
            {'ids': ids, 'slideshow_id': str(slideshow_id)},
        )
        logger.info(f"[STORE] Play counts recorded - slideshow_id: {slideshow_id}, requested: {len(ids)}, updated: {updated}, operation: record_plays")
        return updated

    def reset_play_counts(self, event_id=None):
        sql = """
            UPDATE submissions
            SET play_count = 0, play_counts_by_slideshow = NULL, last_played_at = NULL
        """
        params = {}
        if event_id:
            sql += "WHERE event_id = %(event_id)s OR %(event_id)s = ANY(COALESCE(event_ids, '{}'))"
            params['event_id'] = event_id
        updated = self._run('reset_play_counts', sql, params)
        logger.warning(f"[STORE] Play counts reset - event_id: {event_id or 'ALL'}, updated: {updated}, operation: reset_play_counts")
        return updated

    # --- slideshow configuration ---
    def get_slideshow(self, slideshow_id):
        row = self._run(
            'get_slideshow',
            f"SELECT {', '.join(SETTINGS_COLUMNS)} FROM slideshows WHERE slideshow_id = %(slideshow_id)s",
            {'slideshow_id': slideshow_id},
            fetch='one',
        )
        if not row:
            raise SlideshowNotFound(slideshow_id)
        return settings_from_row(row)

    def list_slideshows(self, event_id):
        rows = self._run(
            'list_slideshows',
            f"SELECT {', '.join(SETTINGS_COLUMNS)} FROM slideshows "
            "WHERE event_id = %(event_id)s ORDER BY created_at DESC",
            {'event_id': event_id},
            fetch='all',
        )
        return [settings_from_row(row) for row in rows]

    def create_slideshow(self, event_id, name, **values):
        event = self._run(
            'create_slideshow',
            "SELECT event_id, name FROM events WHERE event_id = %(event_id)s",
            {'event_id': event_id},
            fetch='one',
        )
        if not event:
            raise EventNotFound(event_id)

        settings = SlideshowSettings(
            slideshow_id=uuid.uuid4().hex,
            event_id=event_id,
            name=name,
            event_name=event['name'] or '',
            **values,
        )
        params = settings.to_dict()
        self._run(
            'create_slideshow',
            f"INSERT INTO slideshows ({', '.join(SETTINGS_COLUMNS)}, created_at, updated_at) "
            f"VALUES ({', '.join('%(' + c + ')s' for c in SETTINGS_COLUMNS)}, NOW(), NOW())",
            params,
        )
        logger.info(f"[STORE] Slideshow created - slideshow_id: {settings.slideshow_id}, event_id: {event_id}, operation: create_slideshow")
        return settings

    def update_slideshow(self, slideshow_id, **values):
        values = {k: v for k, v in values.items() if k in UPDATABLE_COLUMNS}
        if not values:
            return self.get_slideshow(slideshow_id)
        assignments = ', '.join(f"{column} = %({column})s" for column in values)
        params = dict(values, slideshow_id=slideshow_id)
        row = self._run(
            'update_slideshow',
            f"UPDATE slideshows SET {assignments}, updated_at = NOW() "
            f"WHERE slideshow_id = %(slideshow_id)s RETURNING {', '.join(SETTINGS_COLUMNS)}",
            params,
            fetch='one',
        )
        if not row:
            raise SlideshowNotFound(slideshow_id)
        return settings_from_row(row)

    def delete_slideshow(self, slideshow_id):
        deleted = self._run(
            'delete_slideshow',
            "DELETE FROM slideshows WHERE slideshow_id = %(slideshow_id)s",
            {'slideshow_id': slideshow_id},
        )
        if not deleted:
            raise SlideshowNotFound(slideshow_id)
        return deleted
