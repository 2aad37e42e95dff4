import logging
import threading
import time
import uuid

from eventcam.scheduler import SlideshowSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Live display sessions, keyed by a random session id.

    Each public display gets its own SlideshowSession when it connects and
    loses it on disconnect, or once it has not polled for idle_timeout
    seconds. Idle sessions are reaped on every lookup and by a background
    timer that runs every reap_interval seconds while any session is open.
    """

    def __init__(self, idle_timeout=600, clock=time.monotonic, reap_interval=None):
        self.idle_timeout = idle_timeout
        self.reap_interval = reap_interval if reap_interval is not None else idle_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions = {}
        self._last_seen = {}
        self._reaper = None

    def create(self, settings, store, retry_interval):
        self.reap_idle()
        session = SlideshowSession(
            slideshow_id=settings.slideshow_id,
            event_id=settings.event_id,
            store=store,
            playlist_size=settings.buffer_size,
            tolerance=settings.square_tolerance,
            retry_interval=retry_interval,
        )
        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = session
            self._last_seen[session_id] = self._clock()
            self._schedule_reaper()
        logger.info(f"[SLIDESHOW] Display session created - slideshow_id: {settings.slideshow_id}, session_id: {session_id}, operation: create_session")
        session.start()
        return session_id, session

    def get(self, slideshow_id, session_id):
        """Return the session and mark it as seen, or None."""
        self.reap_idle()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.slideshow_id != slideshow_id:
                return None
            self._last_seen[session_id] = self._clock()
            return session

    def close(self, slideshow_id, session_id):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.slideshow_id != slideshow_id:
                return False
            del self._sessions[session_id]
            self._last_seen.pop(session_id, None)
        session.close()
        return True

    def close_for_slideshow(self, slideshow_id):
        with self._lock:
            doomed = [sid for sid, s in self._sessions.items() if s.slideshow_id == slideshow_id]
            sessions = [self._sessions.pop(sid) for sid in doomed]
            for sid in doomed:
                self._last_seen.pop(sid, None)
        for session in sessions:
            session.close()
        return len(sessions)

    def apply_settings(self, settings):
        """
        Push updated slideshow settings to its live sessions.

        Deactivating a slideshow ends its sessions; otherwise the new
        playlist size and square tolerance apply from each slot's next
        rebuild.
        """
        if not settings.is_active:
            return self.close_for_slideshow(settings.slideshow_id)
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.slideshow_id == settings.slideshow_id]
        for session in sessions:
            session.reconfigure(settings.buffer_size, settings.square_tolerance)
        return len(sessions)

    def reap_idle(self):
        now = self._clock()
        with self._lock:
            stale = [sid for sid, seen in self._last_seen.items() if now - seen > self.idle_timeout]
            sessions = [(sid, self._sessions.pop(sid)) for sid in stale]
            for sid in stale:
                del self._last_seen[sid]
        for sid, session in sessions:
            logger.info(f"[SLIDESHOW] Reaping idle display session - slideshow_id: {session.slideshow_id}, session_id: {sid}, operation: reap_idle")
            session.close()
        return len(sessions)

    def shutdown(self):
        """Close every session and stop the reaper."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_seen.clear()
            reaper, self._reaper = self._reaper, None
        if reaper is not None:
            reaper.cancel()
        for session in sessions:
            session.close()

    def _schedule_reaper(self):
        # Caller holds the lock
        if self._reaper is not None or not self._sessions:
            return
        timer = threading.Timer(self.reap_interval, self._run_reaper)
        timer.daemon = True
        self._reaper = timer
        timer.start()

    def _run_reaper(self):
        with self._lock:
            self._reaper = None
        self.reap_idle()
        with self._lock:
            self._schedule_reaper()

    def __len__(self):
        with self._lock:
            return len(self._sessions)
