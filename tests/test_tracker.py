import pytest
from anpr_pipeline.models import DetectionKind, TrackStatus
from anpr_pipeline.tracking.plate_tracker import PlateTracker


@pytest.fixture
def tracker():
    return PlateTracker(iou_threshold=0.3, max_lost_frames=10)


def test_tracker_initialization(tracker):
    assert tracker.iou_threshold == 0.3
    assert tracker.max_lost_frames == 10
    assert len(tracker.tracks) == 0


def test_new_detections_create_tracks(tracker, make_detection):
    detections = [make_detection(100, 100, 200, 150), make_detection(300, 300, 400, 350)]
    active = tracker.update(detections, 0)

    assert [t.track_id for t in active] == [1, 2]
    assert [d.track_id for d in detections] == [1, 2]
    assert all(t.status is TrackStatus.ACTIVE for t in active)


def test_overlapping_detection_keeps_identity(tracker, make_detection):
    tracker.update([make_detection(100, 100, 200, 150, confidence=0.9)], 0)
    moved = make_detection(105, 100, 205, 150, confidence=0.5)
    tracker.update([moved], 33)

    track = tracker.get_track(1)
    assert moved.track_id == 1
    assert len(tracker.tracks) == 1
    assert track.bbox == (105, 100, 205, 150)
    assert track.last_seen_ms == 33
    assert track.confidence == pytest.approx(0.9 * 0.7 + 0.5 * 0.3)
    assert len(track.detections) == 2


def test_highest_iou_track_wins(tracker, make_detection):
    tracker.update([make_detection(0, 0, 100, 100), make_detection(50, 0, 150, 100)], 0)
    detection = make_detection(40, 0, 140, 100)
    tracker.update([detection], 33)

    # IoU 0.43 with track 1, 0.82 with track 2
    assert detection.track_id == 2
    assert tracker.get_track(1).status is TrackStatus.LOST


def test_low_overlap_spawns_new_track(tracker, make_detection):
    tracker.update([make_detection(100, 100, 200, 150)], 0)
    far = make_detection(180, 100, 280, 150)
    tracker.update([far], 33)

    assert far.track_id == 2
    assert tracker.get_track(1).status is TrackStatus.LOST


def test_vehicle_detections_are_ignored(tracker, make_detection):
    active = tracker.update([make_detection(kind=DetectionKind.VEHICLE)], 0)
    assert active == []
    assert len(tracker.tracks) == 0


def test_track_lifecycle_is_monotonic(tracker, make_detection):
    tracker.update([make_detection()], 0)

    tracker.update([], 33)
    assert tracker.get_track(1).status is TrackStatus.LOST

    # round(330 / 33) == 10 is not more than max_lost_frames
    tracker.update([], 330)
    assert tracker.get_track(1).status is TrackStatus.LOST

    tracker.update([], 400)
    assert tracker.get_track(1).status is TrackStatus.FINISHED

    # Same place again: finished tracks are never revived
    detection = make_detection()
    tracker.update([detection], 433)
    assert detection.track_id == 2
    assert tracker.get_track(1).status is TrackStatus.FINISHED


def test_lost_track_can_recover(tracker, make_detection):
    tracker.update([make_detection()], 0)
    tracker.update([], 33)
    detection = make_detection()
    tracker.update([detection], 66)

    assert detection.track_id == 1
    assert tracker.get_track(1).status is TrackStatus.ACTIVE


def test_finished_tracks_are_capped(tracker, make_detection):
    detections = [make_detection(i * 100, 0, i * 100 + 50, 50) for i in range(12)]
    tracker.update(detections, 0)
    tracker.update([], 1000)

    assert len(tracker.get_finished_tracks()) == 10
    assert len(tracker.tracks) == 10


def test_empty_update_is_valid(tracker):
    assert tracker.update([], 0) == []
    assert tracker.frame_count == 1


def test_predict_next_position(tracker, make_detection):
    tracker.update([make_detection(0, 0, 10, 10)], 0)
    assert tracker.predict_next_position(1) is None

    tracker.update([make_detection(5, 0, 15, 10)], 33)
    assert tracker.predict_next_position(1) == (10, 0, 20, 10)


def test_contains_point_and_history(tracker, make_detection):
    tracker.update([make_detection(100, 100, 200, 150)], 0)
    assert tracker.contains_point(150, 120, 1)
    assert not tracker.contains_point(10, 10, 1)
    assert not tracker.contains_point(150, 120, 99)
    assert len(tracker.get_track_history(1)) == 1


def test_statistics_and_reset(tracker, make_detection):
    tracker.update([make_detection()], 0)
    tracker.update([make_detection()], 33)

    stats = tracker.get_statistics()
    assert stats['total_tracks'] == 1
    assert stats['active_tracks'] == 1
    assert stats['avg_detections_per_track'] == 2
    assert stats['avg_track_duration'] == 33

    tracker.reset()
    assert len(tracker.tracks) == 0
    assert tracker.next_track_id == 1


def test_equal_iou_goes_to_earlier_track(tracker, make_detection):
    tracker.update([make_detection(0, 0, 100, 100), make_detection(100, 0, 200, 100)], 0)
    detection = make_detection(50, 0, 150, 100)
    tracker.update([detection], 33)

    # IoU is 1/3 with both tracks
    assert detection.track_id == 1


def test_iou_equal_to_threshold_does_not_match(make_detection):
    tracker = PlateTracker(iou_threshold=1 / 3)
    tracker.update([make_detection(0, 0, 100, 100)], 0)
    detection = make_detection(50, 0, 150, 100)
    tracker.update([detection], 33)

    assert detection.track_id == 2
