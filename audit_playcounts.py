#!/usr/bin/env python3
"""
Play Count Audit Script

Prints, for one event, how evenly the slideshow has been spreading screen
time: the play-count distribution of eligible submissions, the aspect-ratio
mix the playlist builder will see, and whether mosaics can be completed.

This is read-only. It does not change any counters.

    python audit_playcounts.py <event_id>
"""

import os
import sys
from collections import Counter

from dotenv import load_dotenv

from eventcam.classifier import Bucket, bucket_for
from eventcam.playlist import SLIDE_LAYOUTS
from eventcam.store import PostgresSubmissionStore, StoreError

PLAY_COUNT_RANGES = (
    ("0-9", 0, 9),
    ("10-49", 10, 49),
    ("50+", 50, None),
)


def print_header(title):
    """Print a formatted header"""
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80)


def play_count_distribution(submissions):
    distribution = Counter()
    for submission in submissions:
        for label, low, high in PLAY_COUNT_RANGES:
            if submission.play_count >= low and (high is None or submission.play_count <= high):
                distribution[label] += 1
                break
    return distribution


def main():
    """Main audit"""
    if len(sys.argv) < 2:
        print("Usage: python audit_playcounts.py <event_id>")
        return 1
    event_id = sys.argv[1]

    load_dotenv()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("✗ DATABASE_URL is not set")
        return 1

    print_header(f"Play Count Audit - event {event_id}")

    try:
        submissions = PostgresSubmissionStore(database_url).query_eligible(event_id)
    except StoreError as e:
        print(f"✗ Could not load submissions: {e}")
        return 1

    if not submissions:
        print("No eligible submissions for this event")
        return 0

    counts = [s.play_count for s in submissions]
    print(f"Eligible submissions: {len(submissions)}")
    print(f"Play counts: min {min(counts)}, max {max(counts)}, avg {sum(counts) / len(counts):.1f}")

    print_header("1. Play Count Distribution")
    distribution = play_count_distribution(submissions)
    for label, _, _ in PLAY_COUNT_RANGES:
        print(f"  {label:>6}: {distribution[label]}")

    print_header("2. Aspect Ratio Distribution")
    buckets = Counter(bucket_for(s) for s in submissions)
    for bucket in Bucket:
        kind, size, _, _ = SLIDE_LAYOUTS[bucket]
        total = buckets[bucket]
        print(f"  {bucket.value:>5}: {total:>5} submissions -> {total // size} {kind} slides, {total % size} waiting")
        if 0 < total < size:
            print(f"  ✗ Not enough {bucket.value} photos for a single {kind}")

    print_header("3. Least Played")
    for submission in submissions[:10]:
        print(f"  {submission.id}  plays: {submission.play_count}  {bucket_for(submission).value}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
