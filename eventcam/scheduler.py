"""
Three-slot slideshow playback scheduler.

A SlideshowSession owns three playlists (slots A, B and C). One slot is
active and plays slide by slide; when it runs out, playback moves to the next
slot and the finished slot is rebuilt in the background, excluding every
submission resident in the other two slots. Store I/O (rebuilds and play
recording) happens on the session's worker threads so current_slide() and
advance() never wait on the database.
"""
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
import logging
import threading
import traceback

from eventcam.classifier import SQUARE_TOLERANCE
from eventcam.playlist import build_playlist, extract_submission_ids

logger = logging.getLogger(__name__)

SLOTS = ('A', 'B', 'C')
DEFAULT_RETRY_INTERVAL = 30.0


class SessionState(Enum):
    IDLE = 'idle'
    PLAYING = 'playing'
    REBUILDING = 'rebuilding'
    EXHAUSTED = 'exhausted'


def next_slot(slot):
    return SLOTS[(SLOTS.index(slot) + 1) % len(SLOTS)]


class SlideshowSession:
    """
    Playback state for one public slideshow display.

    Args:
        slideshow_id: slideshow whose per-instance play counters are updated
        event_id: event the submissions are drawn from
        store: object providing query_eligible(event_id, exclude_ids) and
            record_plays(submission_ids, slideshow_id)
        playlist_size: optional cap on slides per playlist
        tolerance: square band for the classifier
        retry_interval: seconds between bootstrap retries while exhausted
        executor: optional executor for background work; the session owns
            (and shuts down) the one it creates itself
    """

    def __init__(self, slideshow_id, event_id, store, playlist_size=None,
                 tolerance=SQUARE_TOLERANCE, retry_interval=DEFAULT_RETRY_INTERVAL,
                 executor=None):
        self.slideshow_id = slideshow_id
        self.event_id = event_id
        self.store = store
        self.playlist_size = playlist_size
        self.tolerance = tolerance
        self.retry_interval = retry_interval

        self._lock = threading.RLock()
        self._playlists = {slot: [] for slot in SLOTS}
        # Rebuilt content for the slot that is playing, applied on the next rotation into it
        self._staged = {}
        self._rebuilding = set()
        self._active = SLOTS[0]
        self._index = 0
        self._bootstrapped = False
        self._exhausted = False
        self._closed = False
        self._retry_timer = None
        self._bootstrap_in_flight = False

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=len(SLOTS) + 1,
            thread_name_prefix=f"slideshow-{slideshow_id}",
        )

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------
    @property
    def state(self):
        with self._lock:
            if not self._bootstrapped:
                return SessionState.IDLE
            if self._exhausted:
                return SessionState.EXHAUSTED
            if self._rebuilding:
                return SessionState.REBUILDING
            return SessionState.PLAYING

    @property
    def active_slot(self):
        with self._lock:
            return self._active

    def start(self):
        """Build A, B and C in order and start playback on A."""
        self._bootstrap()
        return self.state

    def current_slide(self):
        """The slide to render now, or None while idle/exhausted."""
        with self._lock:
            playlist = self._playlists[self._active]
            if self._index < len(playlist):
                return playlist[self._index]
            return None

    def advance(self):
        """
        Move past the slide currently shown.

        Play counts for the slide are recorded in the background; a slot
        that runs out is replaced by the next non-empty slot and queued for
        a rebuild. Never raises because of store failures.
        """
        with self._lock:
            if self._closed:
                return None
            slide = self.current_slide()
            if slide is None:
                return None

            self._index += 1
            if self._index >= len(self._playlists[self._active]):
                self._rotate()
            upcoming = self.current_slide()

        self._dispatch(self._record_plays, slide.submission_ids())
        return upcoming

    def excluded_ids(self):
        """Every submission id resident in any slot (staged content included)."""
        with self._lock:
            return self._resident_ids(SLOTS)

    def snapshot(self):
        with self._lock:
            return {
                'slideshow_id': self.slideshow_id,
                'event_id': self.event_id,
                'state': self.state.value,
                'active_slot': self._active,
                'index': self._index,
                'slots': {slot: len(self._playlists[slot]) for slot in SLOTS},
                'staged': sorted(self._staged),
                'rebuilding': sorted(self._rebuilding),
            }

    def reconfigure(self, playlist_size=None, tolerance=SQUARE_TOLERANCE):
        """New settings apply from the next rebuild of each slot."""
        with self._lock:
            self.playlist_size = playlist_size
            self.tolerance = tolerance
        logger.info(f"[SCHEDULER] Session reconfigured - slideshow_id: {self.slideshow_id}, playlist_size: {playlist_size}, tolerance: {tolerance}, operation: reconfigure")

    def close(self):
        with self._lock:
            self._closed = True
            timer, self._retry_timer = self._retry_timer, None
        if timer is not None:
            timer.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        logger.info(f"[SCHEDULER] Session closed - slideshow_id: {self.slideshow_id}, operation: close")

    # ------------------------------------------------------------------
    # Bootstrap / retry
    # ------------------------------------------------------------------
    def _bootstrap(self):
        with self._lock:
            if self._closed or self._bootstrap_in_flight:
                return
            self._bootstrap_in_flight = True

        logger.info(f"[SCHEDULER] Bootstrapping playlists - slideshow_id: {self.slideshow_id}, event_id: {self.event_id}, operation: bootstrap")
        built = {}
        exclude = set()
        try:
            for slot in SLOTS:
                playlist = self._build(exclude)
                built[slot] = playlist
                exclude.update(extract_submission_ids(playlist))
        except Exception as e:
            logger.error(f"[SCHEDULER] Bootstrap failed - slideshow_id: {self.slideshow_id}, event_id: {self.event_id}, error: {str(e)}, operation: bootstrap")
            built = None

        with self._lock:
            self._bootstrap_in_flight = False
            if self._closed:
                return
            self._bootstrapped = True
            if built is not None:
                self._playlists = built
                self._staged.clear()
                self._active = SLOTS[0]
                self._index = 0

            if any(self._playlists[slot] for slot in SLOTS):
                if not self._playlists[self._active]:
                    self._activate_first_available(self._active)
                self._exhausted = False
                logger.info(f"[SCHEDULER] Playback ready - slideshow_id: {self.slideshow_id}, slots: {self._slot_sizes()}, operation: bootstrap")
            else:
                self._enter_exhausted()

    def _enter_exhausted(self):
        self._exhausted = True
        self._index = 0
        logger.warning(f"[SCHEDULER] No content to play - slideshow_id: {self.slideshow_id}, event_id: {self.event_id}, retry_in: {self.retry_interval}s, operation: exhausted")
        self._schedule_retry()

    def _schedule_retry(self):
        if self._closed or self._retry_timer is not None:
            return
        timer = threading.Timer(self.retry_interval, self._retry)
        timer.daemon = True
        self._retry_timer = timer
        timer.start()

    def _retry(self):
        with self._lock:
            self._retry_timer = None
            if self._closed or not self._exhausted:
                return
        self._bootstrap()

    # ------------------------------------------------------------------
    # Rotation and rebuilds (callers hold the lock)
    # ------------------------------------------------------------------
    def _rotate(self):
        finished = self._active
        following = next_slot(finished)
        # Next in cycle first, the stale finished slot only as a last resort
        if not self._activate_first_available(following):
            self._active = following
            self._enter_exhausted()
        logger.info(f"[SCHEDULER] Rotated playlist - slideshow_id: {self.slideshow_id}, finished: {finished}, active: {self._active}, operation: rotate")
        self._request_rebuild(finished)

    def _activate_first_available(self, start):
        slot = start
        for _ in SLOTS:
            self._apply_staged(slot)
            if self._playlists[slot]:
                self._active = slot
                self._index = 0
                return True
            # Skipped slots are refilled too, so new uploads reach every slot
            if slot != self._active:
                self._request_rebuild(slot)
            slot = next_slot(slot)
        return False

    def _apply_staged(self, slot):
        if slot in self._staged:
            self._playlists[slot] = self._dedupe(slot, self._staged.pop(slot))

    def _request_rebuild(self, slot):
        if slot in self._rebuilding:
            logger.info(f"[SCHEDULER] Rebuild already in flight - slideshow_id: {self.slideshow_id}, slot: {slot}, operation: rebuild")
            return
        exclude = self._resident_ids(s for s in SLOTS if s != slot)
        self._rebuilding.add(slot)
        if not self._dispatch(self._rebuild, slot, exclude):
            self._rebuilding.discard(slot)

    def _rebuild(self, slot, exclude):
        try:
            playlist = self._build(exclude)
        except Exception as e:
            logger.error(f"[SCHEDULER] Rebuild failed, keeping previous playlist - slideshow_id: {self.slideshow_id}, slot: {slot}, error: {str(e)}, operation: rebuild")
            with self._lock:
                self._rebuilding.discard(slot)
            return

        with self._lock:
            self._rebuilding.discard(slot)
            if self._closed:
                return
            if self._exhausted:
                playlist = self._dedupe(slot, playlist)
                self._playlists[slot] = playlist
                if playlist:
                    self._staged.pop(slot, None)
                    self._active = slot
                    self._index = 0
                    self._exhausted = False
                    logger.info(f"[SCHEDULER] Recovered from exhausted state - slideshow_id: {self.slideshow_id}, slot: {slot}, operation: rebuild")
            elif slot == self._active:
                self._staged[slot] = playlist
            else:
                self._playlists[slot] = self._dedupe(slot, playlist)
            logger.info(f"[SCHEDULER] Rebuild complete - slideshow_id: {self.slideshow_id}, slot: {slot}, slides: {len(playlist)}, operation: rebuild")

    def _dedupe(self, slot, playlist):
        """Drop slides sharing a submission with the other two slots."""
        live = self._resident_ids(s for s in SLOTS if s != slot)
        kept = [slide for slide in playlist if live.isdisjoint(slide.submission_ids())]
        if len(kept) != len(playlist):
            logger.warning(f"[SCHEDULER] Dropped overlapping slides at swap - slideshow_id: {self.slideshow_id}, slot: {slot}, dropped: {len(playlist) - len(kept)}, operation: swap")
        return kept

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _build(self, exclude):
        candidates = self.store.query_eligible(self.event_id, sorted(exclude))
        return build_playlist(candidates, exclude, limit=self.playlist_size, tolerance=self.tolerance)

    def _record_plays(self, submission_ids):
        try:
            self.store.record_plays(submission_ids, self.slideshow_id)
        except Exception as e:
            logger.warning(f"[SCHEDULER] Failed to record plays - slideshow_id: {self.slideshow_id}, count: {len(submission_ids)}, error: {str(e)}, operation: record_plays")

    def _dispatch(self, fn, *args):
        try:
            self._executor.submit(self._guarded, fn, *args)
            return True
        except RuntimeError as e:
            logger.warning(f"[SCHEDULER] Background task not scheduled - slideshow_id: {self.slideshow_id}, task: {fn.__name__}, error: {str(e)}, operation: dispatch")
            return False

    def _guarded(self, fn, *args):
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"[SCHEDULER] Background task crashed - slideshow_id: {self.slideshow_id}, task: {fn.__name__}, error: {str(e)}, operation: dispatch")
            logger.error(f"[SCHEDULER] Traceback: {traceback.format_exc()}")

    def _resident_ids(self, slots):
        ids = set()
        for slot in slots:
            ids.update(extract_submission_ids(self._playlists[slot]))
            if slot in self._staged:
                ids.update(extract_submission_ids(self._staged[slot]))
        return ids

    def _slot_sizes(self):
        return {slot: len(self._playlists[slot]) for slot in SLOTS}
