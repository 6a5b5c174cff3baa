"""Before points 编解码单元测试"""

import base64
import json
from datetime import datetime

import numpy as np
import pytest

from correction.affine_correction import calculate_correction_params, estimate_corrected_pose
from detectors.face_landmarks import normalize_landmarks
from models.data_models import CorrectionResult, PoseAngles, ReferenceData
from storage.reference_codec import encode_reference, parse_points
from synthetic_landmarks import neutral


def _reference(image="data:image/jpeg;base64,AAAA", landmarks=None, correction=False):
    pose = PoseAngles(roll=1.5, pitch=-2.0, yaw=0.5)
    result = None
    if correction:
        result = CorrectionResult(
            corrected_image=np.zeros((4, 4, 3), dtype=np.uint8),
            correction_params=calculate_correction_params(pose, (2.0, 2.0)),
            original_pose=pose,
            estimated_corrected_pose=estimate_corrected_pose(pose),
        )
    return ReferenceData(
        pose=pose,
        image=image,
        landmarks=landmarks,
        timestamp=datetime(2025, 7, 29, 10, 30, 0),
        correction_result=result,
    )


class TestEncodeReference:
    def test_payload_fields(self):
        payload = json.loads(encode_reference(_reference()))
        assert payload["pose"] == {"roll": 1.5, "pitch": -2.0, "yaw": 0.5}
        assert payload["image"] == "data:image/jpeg;base64,AAAA"
        assert payload["landmarks"] is None
        assert payload["timestamp"] == "2025-07-29T10:30:00"
        assert "correctionResult" not in payload

    def test_landmarks_keep_missing_slots(self):
        raw = neutral()
        raw[0] = None
        payload = json.loads(encode_reference(_reference(landmarks=normalize_landmarks(raw))))
        assert len(payload["landmarks"]) == 468
        assert payload["landmarks"][0] is None
        assert payload["landmarks"][1] == {"x": 0.5, "y": 0.55, "z": 0.0}

    def test_correction_result_without_image(self):
        payload = json.loads(encode_reference(_reference(correction=True)))
        correction = payload["correctionResult"]
        assert correction["originalPose"]["roll"] == 1.5
        assert correction["estimatedCorrectedPose"]["roll"] == pytest.approx(0.3)
        assert set(correction["correctionInfo"]) >= {"scaleX", "skewY", "translateX", "centerY"}

    def test_bytes_image_is_base64(self):
        payload = json.loads(encode_reference(_reference(image=b"\x01\x02")))
        assert base64.b64decode(payload["image"]) == b"\x01\x02"

    def test_array_image_is_data_url(self):
        image = np.zeros((8, 8, 3), dtype=np.uint8)
        payload = json.loads(encode_reference(_reference(image=image)))
        assert payload["image"].startswith("data:image/jpeg;base64,")


class TestParsePoints:
    def test_encoded_reference(self):
        original = _reference(landmarks=normalize_landmarks(neutral()))
        parsed = parse_points(encode_reference(original))
        assert parsed.pose == original.pose
        assert parsed.image == original.image
        assert parsed.landmarks == original.landmarks
        assert parsed.timestamp == original.timestamp

    def test_base64_json(self):
        payload = json.dumps({"pose": {"roll": 1.0, "pitch": 2.0, "yaw": 3.0}, "image": "img"})
        parsed = parse_points(base64.b64encode(payload.encode("utf-8")).decode("ascii"))
        assert parsed.pose == PoseAngles(1.0, 2.0, 3.0)
        assert parsed.image == "img"

    def test_missing_axes_default_to_zero(self):
        parsed = parse_points(json.dumps({"pose": {"pitch": 4.0}}))
        assert parsed.pose == PoseAngles(roll=0.0, pitch=4.0, yaw=0.0)
        assert parsed.image == ""
        assert parsed.landmarks is None

    def test_utc_suffix_timestamp(self):
        parsed = parse_points(json.dumps({"pose": {"roll": 1.0}, "timestamp": "2025-07-29T01:00:00.000Z"}))
        assert parsed.timestamp.year == 2025
        assert parsed.timestamp.utcoffset().total_seconds() == 0

    def test_bad_timestamp_uses_now(self):
        parsed = parse_points(json.dumps({"pose": {"roll": 1.0}, "timestamp": "yesterday"}))
        assert isinstance(parsed.timestamp, datetime)

    @pytest.mark.parametrize("points", [
        "",
        "not json at all",
        json.dumps({"image": "img"}),
        json.dumps({"pose": {}}),
        json.dumps({"pose": "flat"}),
        json.dumps([1, 2, 3]),
        json.dumps({"pose": {"roll": "abc"}}),
    ])
    def test_unsupported_payloads(self, points):
        assert parse_points(points) is None
