"""
Shared fixtures: an in-memory submission store and executors that let
tests decide when background work runs.
"""
from concurrent.futures import Future
from datetime import datetime, timedelta
import threading

import pytest

from eventcam.playlist import SubmissionSummary
from eventcam.store import (
    SlideshowSettings, StoreError, SlideshowNotFound, EventNotFound, UPDATABLE_COLUMNS,
)

BASE_TIME = datetime(2025, 6, 1, 18, 0, 0)

DIMENSIONS = {
    'landscape': (1920, 1080),
    'square': (1080, 1080),
    'portrait': (1080, 1920),
}


class FakeSubmissionStore:
    """Thread-safe stand-in for PostgresSubmissionStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self.submissions = {}
        self.slideshows = {}
        self.events = {}
        self.fail_queries = False
        self.fail_writes = False
        self.query_calls = []
        self.play_calls = []
        self._counter = 0

    # --- seeding helpers ---
    def add(self, kind, count=1, event_id='event_1', play_count=0, prefix=None):
        ids = []
        width, height = DIMENSIONS[kind]
        with self._lock:
            for _ in range(count):
                self._counter += 1
                submission_id = f"{prefix or kind[0]}{self._counter}"
                self.submissions[submission_id] = {
                    'id': submission_id,
                    'event_id': event_id,
                    'image_url': f"https://cdn.example.com/{submission_id}.jpg",
                    'width': width,
                    'height': height,
                    'play_count': play_count,
                    'plays_by_slideshow': {},
                    'archived': False,
                    'created_at': BASE_TIME + timedelta(minutes=self._counter),
                }
                ids.append(submission_id)
        return ids

    def archive(self, *submission_ids):
        with self._lock:
            for submission_id in submission_ids:
                self.submissions[submission_id]['archived'] = True

    def add_slideshow(self, slideshow_id='show_1', event_id='event_1', **values):
        settings = SlideshowSettings(slideshow_id=slideshow_id, event_id=event_id, name='Main Screen', **values)
        self.slideshows[slideshow_id] = settings
        self.events.setdefault(event_id, 'Summer Party')
        return settings

    def play_count(self, submission_id):
        with self._lock:
            return self.submissions[submission_id]['play_count']

    # --- engine contract ---
    def query_eligible(self, event_id, exclude_ids=()):
        with self._lock:
            self.query_calls.append((event_id, set(exclude_ids)))
            if self.fail_queries:
                raise StoreError("query_eligible failed")
            excluded = set(exclude_ids)
            rows = [
                row for row in self.submissions.values()
                if row['event_id'] == event_id and not row['archived'] and row['id'] not in excluded
            ]
            rows.sort(key=lambda row: (row['play_count'], row['created_at']))
            return [
                SubmissionSummary(
                    id=row['id'], image_url=row['image_url'], width=row['width'],
                    height=row['height'], play_count=row['play_count'], created_at=row['created_at'],
                )
                for row in rows
            ]

    def record_plays(self, submission_ids, slideshow_id):
        with self._lock:
            self.play_calls.append((list(submission_ids), slideshow_id))
            if self.fail_writes:
                raise StoreError("record_plays failed")
            updated = 0
            for submission_id in submission_ids:
                row = self.submissions.get(submission_id)
                if row is None:
                    continue
                row['play_count'] += 1
                plays = row['plays_by_slideshow']
                plays[slideshow_id] = plays.get(slideshow_id, 0) + 1
                updated += 1
            return updated

    # --- slideshow configuration ---
    def get_slideshow(self, slideshow_id):
        if self.fail_queries:
            raise StoreError("get_slideshow failed")
        if slideshow_id not in self.slideshows:
            raise SlideshowNotFound(slideshow_id)
        return self.slideshows[slideshow_id]

    def list_slideshows(self, event_id):
        if self.fail_queries:
            raise StoreError("list_slideshows failed")
        return [s for s in self.slideshows.values() if s.event_id == event_id]

    def create_slideshow(self, event_id, name, **values):
        if event_id not in self.events:
            raise EventNotFound(event_id)
        slideshow_id = f"show_{len(self.slideshows) + 1}"
        settings = SlideshowSettings(
            slideshow_id=slideshow_id, event_id=event_id, name=name,
            event_name=self.events[event_id], **values,
        )
        self.slideshows[slideshow_id] = settings
        return settings

    def update_slideshow(self, slideshow_id, **values):
        settings = self.get_slideshow(slideshow_id)
        for key, value in values.items():
            if key in UPDATABLE_COLUMNS:
                setattr(settings, key, value)
        return settings

    def delete_slideshow(self, slideshow_id):
        if self.slideshows.pop(slideshow_id, None) is None:
            raise SlideshowNotFound(slideshow_id)
        return 1


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


class ManualExecutor:
    """Queues submitted work until the test runs it."""

    def __init__(self):
        self.tasks = []

    def submit(self, fn, *args, **kwargs):
        self.tasks.append((fn, args, kwargs))
        return Future()

    def shutdown(self, wait=True):
        pass

    @staticmethod
    def _task_name(task):
        # Sessions submit _guarded(real_fn, *args)
        _, args, _ = task
        return args[0].__name__ if args and callable(args[0]) else task[0].__name__

    def pending(self, name):
        return [task for task in self.tasks if self._task_name(task) == name]

    def run(self, name=None, slot=None):
        """Run (and remove) queued tasks matching name and, for rebuilds, slot."""
        ran = 0
        for task in list(self.tasks):
            fn, args, kwargs = task
            if name is not None and self._task_name(task) != name:
                continue
            if slot is not None and (len(args) < 2 or args[1] != slot):
                continue
            self.tasks.remove(task)
            fn(*args, **kwargs)
            ran += 1
        return ran


@pytest.fixture
def store():
    return FakeSubmissionStore()


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()
