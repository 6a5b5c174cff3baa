"""基线校准模块，收集用户自然表情帧并以中位数计算中性脸基线"""

import logging
from typing import List

import numpy as np

from detectors.face_measurements import extract_measurements
from models.data_models import BaselineData, LandmarkSet

logger = logging.getLogger(__name__)

# 校准窗口帧数
DEFAULT_WINDOW_SIZE = 60

_MEASUREMENT_FIELDS = ("mouth_height", "eyebrow_height", "eye_openness", "face_height")


def compute_stats(values: list) -> dict:
    """
    计算一组数值的统计信息。

    Args:
        values: 非空浮点数列表

    Returns:
        {"median": float, "mean": float, "std": float, "min": float, "max": float}
    """
    arr = np.asarray(values, dtype=np.float64)
    return {
        "median": float(np.median(arr)),
        "mean": float(arr.mean()),
        "std": float(arr.std()),
        "min": float(arr.min()),
        "max": float(arr.max()),
    }


class BaselineCalibrator:
    """累积校准帧，达到窗口大小后输出各项测量的中位数基线"""

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE):
        if window_size < 1:
            raise ValueError(f"校准帧数必须为正整数: {window_size}")
        self.window_size = window_size
        self._frames: List[LandmarkSet] = []

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def progress(self) -> float:
        """校准进度百分比"""
        return self.frame_count / self.window_size * 100.0

    @property
    def is_complete(self) -> bool:
        return self.frame_count >= self.window_size

    def add_frame(self, landmarks: LandmarkSet) -> bool:
        """
        追加一帧校准数据。

        Returns:
            追加后是否已收集满窗口
        """
        self._frames.append(landmarks)
        return self.is_complete

    def compute_statistics(self) -> dict:
        """按测量项统计当前缓冲区，用于记录校准质量"""
        if not self._frames:
            return {}

        measurements = [extract_measurements(frame) for frame in self._frames]
        return {
            name: compute_stats([getattr(m, name) for m in measurements])
            for name in _MEASUREMENT_FIELDS
        }

    def compute_baseline(self) -> BaselineData:
        """
        计算中性脸基线。

        使用中位数而非均值，少量眨眼或瞬时表情帧不会拉偏基线。

        Returns:
            BaselineData，每项为缓冲区内该测量的中位数
        """
        if not self._frames:
            raise ValueError("没有可用的校准帧")

        stats = self.compute_statistics()
        baseline = BaselineData(**{name: stats[name]["median"] for name in _MEASUREMENT_FIELDS})

        logger.info(
            "基线校准完成: %d 帧, mouth=%.3f eyebrow=%.3f eye=%.4f face=%.4f",
            self.frame_count,
            baseline.mouth_height,
            baseline.eyebrow_height,
            baseline.eye_openness,
            baseline.face_height,
        )
        logger.debug("校准统计: %s", stats)
        return baseline

    def reset(self):
        """清空校准缓冲区"""
        self._frames = []
