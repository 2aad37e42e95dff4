"""
Slideshow playlist generation.

Submissions are grouped by aspect ratio and turned into slides:
- 16:9 landscape  -> single full-screen slide
- 1:1 square      -> mosaic of 6 (3 columns x 2 rows)
- 9:16 portrait   -> mosaic of 3 (3 columns x 1 row)

Within a bucket, least-played submissions go first (oldest first on ties).
Slide types are interleaved round-robin so consecutive slides vary in layout
whenever more than one type can still be built.
"""
from dataclasses import dataclass, field
from datetime import datetime
import logging

from eventcam.classifier import Bucket, SQUARE_TOLERANCE, bucket_for, resolve_dimensions

logger = logging.getLogger(__name__)

KIND_SINGLE = 'single'
KIND_MOSAIC = 'mosaic'

# bucket -> (slide kind, members per slide, grid columns, grid rows)
SLIDE_LAYOUTS = {
    Bucket.LANDSCAPE: (KIND_SINGLE, 1, 1, 1),
    Bucket.SQUARE: (KIND_MOSAIC, 6, 3, 2),
    Bucket.PORTRAIT: (KIND_MOSAIC, 3, 3, 1),
}

# Round-robin order used while building
ROTATION = (Bucket.LANDSCAPE, Bucket.SQUARE, Bucket.PORTRAIT)


@dataclass(frozen=True)
class SubmissionSummary:
    """The subset of a stored submission the slideshow engine reads."""
    id: str
    image_url: str
    width: int = 0
    height: int = 0
    play_count: int = 0
    created_at: datetime = None

    def to_dict(self):
        width, height = resolve_dimensions(self.width, self.height)
        return {
            'id': self.id,
            'image_url': self.image_url,
            'width': width,
            'height': height,
        }


@dataclass(frozen=True)
class Slide:
    kind: str
    bucket: Bucket
    members: tuple = field(default_factory=tuple)

    @property
    def aspect_ratio(self):
        return self.bucket.value

    @property
    def grid(self):
        _, _, columns, rows = SLIDE_LAYOUTS[self.bucket]
        return columns, rows

    def submission_ids(self):
        return [member.id for member in self.members]

    def to_dict(self):
        columns, rows = self.grid
        return {
            'type': self.kind,
            'aspect_ratio': self.aspect_ratio,
            'grid': {'columns': columns, 'rows': rows},
            'submissions': [member.to_dict() for member in self.members],
        }


def _created_at_key(created_at):
    if created_at is None:
        return 0.0
    if isinstance(created_at, datetime):
        return created_at.timestamp()
    try:
        return datetime.fromisoformat(str(created_at)).timestamp()
    except ValueError:
        return 0.0


def ordering_key(submission):
    """Least played first, then oldest first, then id for a stable order."""
    return (
        submission.play_count or 0,
        _created_at_key(submission.created_at),
        str(submission.id),
    )


def partition(candidates, exclude_ids=(), tolerance=SQUARE_TOLERANCE):
    """
    Split candidates into aspect-ratio buckets.

    Excluded ids and repeated ids are dropped. Each bucket is sorted by
    ordering_key so the head of every bucket is the fairest next choice.
    """
    excluded = set(exclude_ids or ())
    seen = set()
    buckets = {bucket: [] for bucket in ROTATION}

    for submission in candidates:
        if submission.id in excluded or submission.id in seen:
            continue
        seen.add(submission.id)
        buckets[bucket_for(submission, tolerance)].append(submission)

    for members in buckets.values():
        members.sort(key=ordering_key)
    return buckets


def build_playlist(candidates, exclude_ids=(), limit=None, tolerance=SQUARE_TOLERANCE):
    """
    Build one ordered playlist of slides from a candidate pool.

    Args:
        candidates: iterable of SubmissionSummary (already filtered for
            visibility by the store, possibly pre-capped)
        exclude_ids: submission ids already scheduled elsewhere
        limit: optional maximum number of slides
        tolerance: square band half-width passed to the classifier

    Returns:
        list of Slide; empty when nothing can be built
    """
    buckets = partition(candidates, exclude_ids, tolerance)
    cursors = {bucket: 0 for bucket in ROTATION}
    playlist = []

    if limit is not None and limit <= 0:
        return playlist

    while True:
        added = False
        for bucket in ROTATION:
            if limit is not None and len(playlist) >= limit:
                break
            kind, size, _, _ = SLIDE_LAYOUTS[bucket]
            start = cursors[bucket]
            members = buckets[bucket][start:start + size]
            if len(members) < size:
                continue
            playlist.append(Slide(kind=kind, bucket=bucket, members=tuple(members)))
            cursors[bucket] = start + size
            added = True

        if not added or (limit is not None and len(playlist) >= limit):
            break

    logger.debug(
        f"[PLAYLIST] Built playlist - slides: {len(playlist)}, "
        f"landscape: {len(buckets[Bucket.LANDSCAPE])}, square: {len(buckets[Bucket.SQUARE])}, "
        f"portrait: {len(buckets[Bucket.PORTRAIT])}, excluded: {len(set(exclude_ids or ()))}, "
        f"operation: build_playlist"
    )
    return playlist


def next_candidate(candidates, exclude_ids=(), tolerance=SQUARE_TOLERANCE):
    """Return the single best next slide, or None."""
    playlist = build_playlist(candidates, exclude_ids, limit=1, tolerance=tolerance)
    return playlist[0] if playlist else None


def extract_submission_ids(playlist):
    """All submission ids in a playlist, in display order."""
    ids = []
    for slide in playlist:
        ids.extend(slide.submission_ids())
    return ids
