"""
Script to reset slideshow play counts.
This will clear, for one event or for every event:
- The global play_count of each submission
- The per-slideshow play counters
- The last_played_at timestamp

Every submission becomes "never played" again, so slideshows restart their
least-played rotation from the oldest photos.

USE WITH CAUTION - THIS CANNOT BE UNDONE!
"""

import os
import sys

from dotenv import load_dotenv

from eventcam.store import PostgresSubmissionStore, StoreError


def reset_playcounts(event_id=None):
    """Reset play counters for one event, or all events when event_id is None."""

    load_dotenv()
    database_url = os.environ.get("DATABASE_URL")

    print("=" * 60)
    print("eventcam Play Count Reset")
    print("=" * 60)

    if not database_url:
        print("\n❌ DATABASE_URL is not set. Add it to .env or the environment.")
        return 1

    scope = f"event {event_id}" if event_id else "ALL events"
    print(f"\nThis will RESET play counts for {scope}:")
    print("  - Global play counts")
    print("  - Per-slideshow play counts")
    print("  - Last played timestamps")
    print("\n⚠️  WARNING: THIS CANNOT BE UNDONE! ⚠️\n")

    confirm = input("Type 'RESET' to confirm: ")

    if confirm != "RESET":
        print("\n❌ Reset cancelled.")
        return 1

    print("\n🔄 Resetting play counts...\n")

    store = PostgresSubmissionStore(database_url)
    try:
        updated = store.reset_play_counts(event_id)
    except StoreError as e:
        print(f"❌ Error resetting play counts: {e}")
        return 1

    print(f"✅ Reset {updated} submissions")
    print("\n" + "=" * 60)
    print("✅ Reset complete!")
    print("=" * 60)
    print("\nRunning display sessions keep their current playlists;")
    print("the next rebuild of each slot picks up the new counts.")
    print("\n")
    return 0


if __name__ == "__main__":
    sys.exit(reset_playcounts(sys.argv[1] if len(sys.argv) > 1 else None))
