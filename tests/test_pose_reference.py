"""PoseReferenceStore 单元测试"""

from datetime import datetime

import pytest

from correction.affine_correction import calculate_correction_params, estimate_corrected_pose
from models.data_models import CorrectionResult, PoseAngles
from storage.pose_reference import PoseReferenceStore
from synthetic_landmarks import make_landmarks, neutral


def _correction_result(pose):
    return CorrectionResult(
        corrected_image="corrected",
        correction_params=calculate_correction_params(pose, (320.0, 240.0)),
        original_pose=pose,
        estimated_corrected_pose=estimate_corrected_pose(pose),
    )


@pytest.fixture
def store():
    return PoseReferenceStore()


class TestEmptyStore:
    def test_no_reference(self, store):
        assert store.has_reference() is False
        assert store.get_reference() is None
        assert store.get_display_pose() is None

    def test_set_correction_without_reference_is_ignored(self, store):
        store.set_correction_result(_correction_result(PoseAngles(roll=5.0)))
        assert store.get_reference() is None


class TestSetReference:
    def test_set_and_get(self, store):
        pose = PoseAngles(roll=1.0, pitch=-2.0, yaw=3.0)
        assert store.set_reference(pose, "image-data", neutral()) is True

        reference = store.get_reference()
        assert store.has_reference() is True
        assert reference.pose == pose
        assert reference.image == "image-data"
        assert len(reference.landmarks) == 468
        assert isinstance(reference.timestamp, datetime)
        assert reference.correction_result is None

    def test_returns_copy_of_pose(self, store):
        pose = PoseAngles(roll=1.0)
        store.set_reference(pose, "image")
        pose.roll = 50.0
        store.get_reference().pose.roll = 99.0
        assert store.get_reference().pose.roll == 1.0

    def test_without_landmarks(self, store):
        store.set_reference(PoseAngles(), "image")
        assert store.get_reference().landmarks is None

    def test_invalid_landmarks_are_dropped(self, store):
        store.set_reference(PoseAngles(), "image", make_landmarks(count=10))
        assert store.get_reference().landmarks is None

    def test_overwrite_replaces_everything(self, store):
        store.set_reference(PoseAngles(roll=1.0), "first", neutral())
        store.set_correction_result(_correction_result(PoseAngles(roll=1.0)))
        store.set_reference(PoseAngles(roll=2.0), "second")

        reference = store.get_reference()
        assert reference.pose.roll == 2.0
        assert reference.image == "second"
        assert reference.landmarks is None
        assert reference.correction_result is None

    def test_missing_image_counts_as_unset(self, store):
        store.set_reference(PoseAngles(), None)
        assert store.get_reference() is None
        assert store.has_reference() is False


class TestCorrectionResult:
    def test_attach_and_display_pose(self, store):
        pose = PoseAngles(roll=10.0, pitch=10.0, yaw=10.0)
        store.set_reference(pose, "image")
        assert store.get_display_pose() == pose

        store.set_correction_result(_correction_result(pose))
        display = store.get_display_pose()
        assert display.roll == pytest.approx(2.0)
        assert display.pitch == pytest.approx(4.0)
        assert display.yaw == pytest.approx(3.0)
        assert store.get_reference().correction_result.corrected_image == "corrected"

    def test_correction_result_is_copied(self, store):
        pose = PoseAngles(roll=10.0)
        store.set_reference(pose, "image")
        store.set_correction_result(_correction_result(pose))

        returned = store.get_reference().correction_result
        returned.estimated_corrected_pose.roll = 99.0
        returned.original_pose.roll = 99.0
        returned.correction_params.scale_x = 99.0

        stored = store.get_reference().correction_result
        assert stored.estimated_corrected_pose.roll == pytest.approx(2.0)
        assert stored.original_pose.roll == 10.0
        assert stored.correction_params.scale_x != 99.0
        assert store.get_display_pose().roll == pytest.approx(2.0)


class TestClearReference:
    def test_clear(self, store):
        store.set_reference(PoseAngles(roll=1.0), "image", neutral())
        store.set_correction_result(_correction_result(PoseAngles(roll=1.0)))
        store.clear_reference()
        assert store.has_reference() is False
        assert store.get_reference() is None
        assert store.get_display_pose() is None

    def test_clear_empty_store(self, store):
        store.clear_reference()
        assert store.has_reference() is False
