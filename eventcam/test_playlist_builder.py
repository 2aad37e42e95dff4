"""
Tests for playlist generation: slide composition, least-played ordering
and round-robin interleaving of slide layouts.
"""
from datetime import datetime, timedelta

import pytest

from eventcam.classifier import Bucket
from eventcam.playlist import (
    SubmissionSummary, Slide, build_playlist, next_candidate, extract_submission_ids,
    partition, KIND_SINGLE, KIND_MOSAIC,
)

T0 = datetime(2025, 6, 1, 12, 0, 0)


def make(submission_id, kind, play_count=0, minutes=0):
    width, height = {
        'landscape': (1920, 1080),
        'square': (1080, 1080),
        'portrait': (1080, 1920),
    }[kind]
    return SubmissionSummary(
        id=submission_id,
        image_url=f"https://cdn.example.com/{submission_id}.jpg",
        width=width,
        height=height,
        play_count=play_count,
        created_at=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture
def scenario_pool():
    """2 landscape (play counts 0 and 1), 6 square and 3 portrait, all unplayed."""
    pool = [make('land_played', 'landscape', play_count=1, minutes=0),
            make('land_fresh', 'landscape', play_count=0, minutes=1)]
    pool += [make(f"sq{i}", 'square', minutes=10 + i) for i in range(6)]
    pool += [make(f"pt{i}", 'portrait', minutes=20 + i) for i in range(3)]
    return pool


def test_scenario_builds_one_round_of_each_layout(scenario_pool):
    playlist = build_playlist(scenario_pool)

    assert [slide.aspect_ratio for slide in playlist] == ['16:9', '1:1', '9:16', '16:9']
    assert [slide.kind for slide in playlist] == [KIND_SINGLE, KIND_MOSAIC, KIND_MOSAIC, KIND_SINGLE]
    assert len(playlist[1].members) == 6
    assert len(playlist[2].members) == 3


def test_scenario_singles_are_not_back_to_back(scenario_pool):
    playlist = build_playlist(scenario_pool)
    singles = [i for i, slide in enumerate(playlist) if slide.kind == KIND_SINGLE]

    assert len(singles) == 2
    assert singles[1] - singles[0] > 1


def test_least_played_landscape_comes_first(scenario_pool):
    playlist = build_playlist(scenario_pool)
    singles = [slide.members[0].id for slide in playlist if slide.kind == KIND_SINGLE]

    assert singles == ['land_fresh', 'land_played']


def test_equal_play_counts_fall_back_to_oldest_first():
    pool = [make('newer', 'landscape', minutes=5), make('older', 'landscape', minutes=1)]
    playlist = build_playlist(pool)

    assert [slide.members[0].id for slide in playlist] == ['older', 'newer']


def test_mosaic_members_keep_fair_order():
    pool = [make(f"sq{i}", 'square', play_count=5 - (i % 6), minutes=i) for i in range(12)]
    playlist = build_playlist(pool)

    first = [m.play_count for m in playlist[0].members]
    second = [m.play_count for m in playlist[1].members]
    assert first == sorted(first)
    assert max(first) <= min(second)


def test_incomplete_mosaics_are_not_built():
    pool = [make(f"sq{i}", 'square') for i in range(5)]
    pool += [make(f"pt{i}", 'portrait') for i in range(2)]

    assert build_playlist(pool) == []


def test_leftovers_below_group_size_are_dropped():
    pool = [make(f"sq{i}", 'square', minutes=i) for i in range(8)]
    playlist = build_playlist(pool)

    assert len(playlist) == 1
    assert [m.id for m in playlist[0].members] == [f"sq{i}" for i in range(6)]


def test_empty_pool_gives_empty_playlist():
    assert build_playlist([]) == []
    assert next_candidate([]) is None


def test_excluded_ids_are_never_scheduled(scenario_pool):
    playlist = build_playlist(scenario_pool, exclude_ids={'land_fresh', 'sq0'})
    ids = extract_submission_ids(playlist)

    assert 'land_fresh' not in ids
    assert 'sq0' not in ids
    # Only 5 squares remain, so no square mosaic can be built
    assert all(slide.bucket != Bucket.SQUARE for slide in playlist)


def test_duplicate_candidates_are_scheduled_once():
    pool = [make('dup', 'landscape'), make('dup', 'landscape'), make('other', 'landscape', minutes=1)]
    ids = extract_submission_ids(build_playlist(pool))

    assert sorted(ids) == ['dup', 'other']


def test_limit_caps_slide_count(scenario_pool):
    assert len(build_playlist(scenario_pool, limit=2)) == 2
    assert build_playlist(scenario_pool, limit=0) == []


def test_only_landscape_repeats_singles():
    pool = [make(f"l{i}", 'landscape', minutes=i) for i in range(4)]
    playlist = build_playlist(pool)

    assert [slide.kind for slide in playlist] == [KIND_SINGLE] * 4


def test_missing_dimensions_are_treated_as_landscape():
    pool = [SubmissionSummary(id='legacy', image_url='https://cdn.example.com/legacy.jpg')]
    playlist = build_playlist(pool)

    assert len(playlist) == 1
    assert playlist[0].bucket == Bucket.LANDSCAPE
    assert playlist[0].to_dict()['submissions'][0]['width'] == 1920
    assert playlist[0].to_dict()['submissions'][0]['height'] == 1080


def test_partition_sorts_each_bucket(scenario_pool):
    buckets = partition(scenario_pool)

    assert [s.id for s in buckets[Bucket.LANDSCAPE]] == ['land_fresh', 'land_played']
    assert len(buckets[Bucket.SQUARE]) == 6
    assert len(buckets[Bucket.PORTRAIT]) == 3


def test_next_candidate_is_first_slide_of_full_build(scenario_pool):
    candidate = next_candidate(scenario_pool)

    assert candidate == build_playlist(scenario_pool)[0]


def test_slide_json_shape():
    slide = Slide(
        kind=KIND_MOSAIC,
        bucket=Bucket.PORTRAIT,
        members=tuple(make(f"pt{i}", 'portrait') for i in range(3)),
    )
    data = slide.to_dict()

    assert data['type'] == 'mosaic'
    assert data['aspect_ratio'] == '9:16'
    assert data['grid'] == {'columns': 3, 'rows': 1}
    assert [s['id'] for s in data['submissions']] == ['pt0', 'pt1', 'pt2']
    assert set(data['submissions'][0]) == {'id', 'image_url', 'width', 'height'}


def test_square_mosaic_grid_is_three_by_two():
    pool = [make(f"sq{i}", 'square') for i in range(6)]
    slide = build_playlist(pool)[0]

    assert slide.grid == (3, 2)


def test_iso_string_created_at_is_ordered():
    pool = [
        SubmissionSummary(id='b', image_url='u', width=1920, height=1080, created_at='2025-06-02T10:00:00'),
        SubmissionSummary(id='a', image_url='u', width=1920, height=1080, created_at='2025-06-01T10:00:00'),
    ]
    assert extract_submission_ids(build_playlist(pool)) == ['a', 'b']
