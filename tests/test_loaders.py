import json
import pytest
from anpr_pipeline.loaders.precomputed import (
    DataLoadError, PrecomputedDetections, PrecomputedRecognitions
)
from anpr_pipeline.models import DetectionKind


def _write(path, data):
    path.write_text(json.dumps(data, ensure_ascii=False), encoding='utf-8')
    return path


@pytest.fixture
def detections_file(tmp_path):
    return _write(tmp_path / 'detections.json', {
        'videoId': 'gate_cam',
        'fps': 30,
        'frames': [
            {'timeMs': 1000, 'detections': [
                {'type': 'plate', 'bbox': [100, 100, 200, 150], 'conf': 0.8}
            ]},
            {'timeMs': 0, 'frameNumber': 0, 'detections': [
                {'type': 'vehicle', 'bbox': [50, 50, 300, 250], 'conf': 0.95},
                {'type': 'plate', 'bbox': [100, 100, 200, 150], 'conf': 0.9}
            ]}
        ]
    })


@pytest.fixture
def recognitions_file(tmp_path, valid_plate):
    return _write(tmp_path / 'recognitions.json', {
        'videoId': 'gate_cam',
        'metadata': {'language': 'bn'},
        'tracks': {
            '1': {'crops': [
                {'cropId': 'c0', 'timeMs': 0, 'bbox': [100, 100, 200, 150],
                 'quality': {'sharpness': 0.8, 'contrast': 0.7, 'area': 0.5},
                 'candidates': [{'text': valid_plate, 'conf': 0.9, 'script': 'bengali'}]},
                {'cropId': 'c1', 'timeMs': 33, 'bbox': [100, 100, 200, 150],
                 'candidates': [{'text': valid_plate, 'conf': 0.7}]}
            ]}
        }
    })


def test_load_detections(detections_file):
    source = PrecomputedDetections()
    source.load(detections_file)

    assert source.is_loaded()
    assert source.video_id == 'gate_cam'
    assert source.get_frame_times() == [0, 1000]
    assert len(source.get_detections(0)) == 2
    assert len(source.get_plate_detections(0)) == 1
    assert source.get_vehicle_detections(0)[0].kind is DetectionKind.VEHICLE


def test_nearest_frame_within_tolerance(detections_file):
    source = PrecomputedDetections(time_tolerance_ms=100)
    source.load(detections_file)

    assert len(source.get_detections(50)) == 2
    assert len(source.get_detections(960)) == 1
    assert source.get_detections(500) == []


def test_detections_are_fresh_copies(detections_file):
    source = PrecomputedDetections()
    source.load(detections_file)

    first = source.get_plate_detections(0)[0]
    first.track_id = 7
    assert source.get_plate_detections(0)[0].track_id is None


def test_detection_statistics(detections_file):
    source = PrecomputedDetections()
    source.load(detections_file)
    stats = source.get_statistics()

    assert stats['total_frames'] == 2
    assert stats['plate_detections'] == 2
    assert stats['vehicle_detections'] == 1
    assert stats['time_range'] == {'start': 0, 'end': 1000}


@pytest.mark.parametrize('bbox', [[100, 100, 200], [200, 100, 100, 150], None])
def test_malformed_bbox_is_rejected(tmp_path, bbox):
    path = _write(tmp_path / 'bad.json', {
        'frames': [{'timeMs': 0, 'detections': [{'type': 'plate', 'bbox': bbox, 'conf': 0.9}]}]
    })
    with pytest.raises(DataLoadError):
        PrecomputedDetections().load(path)


def test_missing_and_invalid_files(tmp_path):
    with pytest.raises(DataLoadError):
        PrecomputedDetections().load(tmp_path / 'missing.json')

    broken = tmp_path / 'broken.json'
    broken.write_text('{not json', encoding='utf-8')
    with pytest.raises(DataLoadError):
        PrecomputedRecognitions().load(broken)

    with pytest.raises(DataLoadError):
        PrecomputedDetections().load(_write(tmp_path / 'empty.json', {}))


def test_load_recognitions(recognitions_file, valid_plate):
    source = PrecomputedRecognitions()
    source.load(recognitions_file)

    assert source.get_track_ids() == ['1']
    assert source.language == 'bn'
    assert source.get_candidates_for_crop('c0')[0].script == 'bengali'
    assert source.get_candidates_for_crop('nope') == []
    assert len(source.get_candidates_for_track(1)) == 2
    assert source.get_best_candidate_for_track(1).confidence == 0.9
    assert source.get_best_candidate_for_track(99) is None
    assert source.get_statistics()['total_crops'] == 2


def test_find_crop_hands_out_each_crop_once(recognitions_file, make_detection):
    source = PrecomputedRecognitions()
    source.load(recognitions_file)
    detection = make_detection()

    first = source.find_crop(detection, 0)
    second = source.find_crop(detection, 0)
    third = source.find_crop(detection, 0)

    assert first.crop_id == 'c0'
    assert first.quality.sharpness == 0.8
    assert second.crop_id == 'c1'
    assert third is None

    source.reset_claims()
    assert source.find_crop(detection, 33).crop_id == 'c1'


def test_find_crop_requires_overlap_and_time(recognitions_file, make_detection):
    source = PrecomputedRecognitions()
    source.load(recognitions_file)

    assert source.find_crop(make_detection(500, 500, 600, 550), 0) is None
    assert source.find_crop(make_detection(), 5000) is None


def test_out_of_range_confidence_is_rejected(tmp_path):
    detections = _write(tmp_path / 'detections.json', {
        'frames': [{'timeMs': 0, 'detections': [
            {'type': 'plate', 'bbox': [100, 100, 200, 150], 'conf': 1.5}
        ]}]
    })
    with pytest.raises(DataLoadError):
        PrecomputedDetections().load(detections)

    recognitions = _write(tmp_path / 'recognitions.json', {
        'tracks': {'1': {'crops': [
            {'cropId': 'c0', 'timeMs': 0, 'bbox': [100, 100, 200, 150],
             'candidates': [{'text': 'ABC', 'conf': -0.1}]}
        ]}}
    })
    with pytest.raises(DataLoadError):
        PrecomputedRecognitions().load(recognitions)
