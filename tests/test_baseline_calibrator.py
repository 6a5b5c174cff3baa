"""基线校准模块单元测试"""

import pytest

from calibration.baseline_calibrator import BaselineCalibrator, compute_stats
from detectors.face_landmarks import normalize_landmarks
from synthetic_landmarks import make_landmarks, neutral, smiling


class TestComputeStats:
    """测试 compute_stats 辅助函数"""

    def test_basic_values(self):
        result = compute_stats([1.0, 2.0, 3.0, 4.0, 5.0])
        assert result["median"] == 3.0
        assert result["mean"] == pytest.approx(3.0)
        assert result["min"] == 1.0
        assert result["max"] == 5.0

    def test_even_count_median_averages_middle(self):
        assert compute_stats([1.0, 2.0, 10.0, 20.0])["median"] == pytest.approx(6.0)

    def test_single_value(self):
        result = compute_stats([42.0])
        assert result["median"] == 42.0
        assert result["std"] == 0.0

    def test_median_resists_outlier(self):
        result = compute_stats([1.0, 1.0, 1.0, 1.0, 100.0])
        assert result["median"] == 1.0
        assert result["mean"] > 10.0


class TestBaselineCalibrator:
    def test_invalid_window_raises(self):
        with pytest.raises(ValueError, match="校准帧数必须为正整数"):
            BaselineCalibrator(window_size=0)

    def test_progress(self):
        calibrator = BaselineCalibrator(window_size=4)
        frame = normalize_landmarks(neutral())
        calibrator.add_frame(frame)
        assert calibrator.progress == pytest.approx(25.0)
        assert not calibrator.is_complete

    def test_add_frame_reports_completion(self):
        calibrator = BaselineCalibrator(window_size=2)
        frame = normalize_landmarks(neutral())
        assert calibrator.add_frame(frame) is False
        assert calibrator.add_frame(frame) is True

    def test_baseline_of_identical_frames(self):
        calibrator = BaselineCalibrator(window_size=3)
        frame = normalize_landmarks(neutral())
        for _ in range(3):
            calibrator.add_frame(frame)
        baseline = calibrator.compute_baseline()
        assert baseline.mouth_height == pytest.approx(10.0)
        assert baseline.eyebrow_height == pytest.approx(100.0)
        assert baseline.eye_openness == pytest.approx(0.02)
        assert baseline.face_height == pytest.approx(0.6)

    def test_baseline_ignores_minority_outliers(self):
        """少量笑容或眨眼帧不影响中位数基线"""
        calibrator = BaselineCalibrator(window_size=5)
        frames = [neutral(), neutral(), smiling(), neutral(), make_landmarks(lower_lid_y=0.40)]
        for raw in frames:
            calibrator.add_frame(normalize_landmarks(raw))
        baseline = calibrator.compute_baseline()
        assert baseline.mouth_height == pytest.approx(10.0)
        assert baseline.eye_openness == pytest.approx(0.02)

    def test_compute_baseline_without_frames_raises(self):
        with pytest.raises(ValueError, match="没有可用的校准帧"):
            BaselineCalibrator().compute_baseline()

    def test_statistics_empty(self):
        assert BaselineCalibrator().compute_statistics() == {}

    def test_reset(self):
        calibrator = BaselineCalibrator(window_size=2)
        calibrator.add_frame(normalize_landmarks(neutral()))
        calibrator.reset()
        assert calibrator.frame_count == 0
        assert calibrator.progress == 0.0
