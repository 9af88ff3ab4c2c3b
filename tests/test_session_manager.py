import pytest
from anpr_pipeline.models import SessionStatus, Track, TrackStatus
from anpr_pipeline.session.session_manager import (
    REASON_CAPACITY, REASON_FLUSH, REASON_TRACK_LOST, SessionManager
)


@pytest.fixture
def manager():
    return SessionManager(max_session_frames=5, disappear_threshold_ms=5000, min_session_frames=3)


@pytest.fixture
def track():
    return Track(track_id=1, status=TrackStatus.ACTIVE, start_ms=0, last_seen_ms=0,
                 bbox=(100, 100, 200, 150), confidence=0.9)


def _feed(manager, track, make_detection, make_crop, count, start_ms=0):
    finalized = None
    for i in range(count):
        time_ms = start_ms + i * 33
        crop = make_crop(crop_id=f"crop_{time_ms}", time_ms=time_ms)
        finalized = manager.update(track, make_detection(), time_ms, crop) or finalized
    return finalized


def test_first_contact_creates_session(manager, track, make_detection):
    assert manager.update(track, make_detection(), 100) is None

    session = manager.get_session(1)
    assert session.status is SessionStatus.ACTIVE
    assert session.start_ms == session.end_ms == 100
    assert session.crops == []


def test_crops_extend_session(manager, track, make_detection, make_crop):
    _feed(manager, track, make_detection, make_crop, 3)
    manager.update(track, make_detection(), 200)

    session = manager.get_session(1)
    assert len(session.crops) == 3
    assert session.end_ms == 200
    assert [c.time_ms for c in session.crops] == [0, 33, 66]


def test_capacity_finalizes_eagerly(manager, track, make_detection, make_crop):
    finalized = _feed(manager, track, make_detection, make_crop, 5)

    assert finalized is not None
    assert finalized.status is SessionStatus.FINALIZED
    assert finalized.finalize_reason == REASON_CAPACITY
    assert len(finalized.crops) == 5
    assert manager.get_active_sessions() == []


def test_finalized_session_is_never_reopened(manager, track, make_detection, make_crop):
    finalized = _feed(manager, track, make_detection, make_crop, 5)
    manager.update(track, make_detection(), 500, make_crop(crop_id='late', time_ms=500))

    reopened = manager.get_session(1)
    assert reopened is not finalized
    assert reopened.status is SessionStatus.ACTIVE
    assert len(finalized.crops) == 5
    assert manager.get_finalized_sessions() == [finalized]


def test_track_lost_waits_for_threshold(manager, track, make_detection, make_crop):
    _feed(manager, track, make_detection, make_crop, 3)

    assert manager.handle_track_lost(1, last_seen_ms=66, now_ms=5065) is None
    session = manager.handle_track_lost(1, last_seen_ms=66, now_ms=5066)
    assert session is not None
    assert session.finalize_reason == REASON_TRACK_LOST


def test_short_session_is_discarded(manager, track, make_detection, make_crop):
    _feed(manager, track, make_detection, make_crop, 2)

    assert manager.handle_track_lost(1, last_seen_ms=33, now_ms=6000) is None
    assert manager.get_session(1) is None
    assert manager.get_finalized_sessions() == []
    assert manager.get_statistics()['discarded_sessions'] == 1


def test_finalize_all(manager, make_detection, make_crop):
    for track_id, count in ((1, 3), (2, 1)):
        track = Track(track_id=track_id, status=TrackStatus.ACTIVE, start_ms=0,
                      last_seen_ms=0, bbox=(0, 0, 10, 10), confidence=0.9)
        _feed(manager, track, make_detection, make_crop, count)

    finalized = manager.finalize_all()
    assert [s.track_id for s in finalized] == [1]
    assert finalized[0].finalize_reason == REASON_FLUSH
    assert manager.get_active_sessions() == []


def test_clear_old_sessions(manager, track, make_detection, make_crop):
    _feed(manager, track, make_detection, make_crop, 5)

    assert manager.clear_old_sessions(now_ms=10000) == 0
    assert manager.clear_old_sessions(now_ms=40000) == 1
    assert manager.get_finalized_sessions() == []


def test_statistics(manager, track, make_detection, make_crop):
    _feed(manager, track, make_detection, make_crop, 3)
    stats = manager.get_statistics()

    assert stats['total_sessions'] == 1
    assert stats['active_sessions'] == 1
    assert stats['total_crops'] == 3
    assert stats['avg_session_duration'] == 66
