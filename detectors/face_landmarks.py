"""人脸关键点输入适配模块，将检测器输出统一为固定 468 槽位的 LandmarkSet"""

import math
from collections.abc import Sequence
from typing import Any, Optional

import numpy as np

from models.data_models import LANDMARK_COUNT, LandmarkPoint, LandmarkSet

# 关键点索引常量（MediaPipe FaceMesh 拓扑）
NOSE_TIP = 1
NOSE_BRIDGE = 6
FOREHEAD_CENTER = 9
CHIN_CENTER = 175

MOUTH_INDICES = {
    "left_corner": 61,
    "right_corner": 291,
    "upper_lip": 13,
    "lower_lip": 17,
}

LEFT_EYEBROW_INDICES = [70, 63, 105, 66]
RIGHT_EYEBROW_INDICES = [300, 293, 334, 296]

LEFT_EYE_TOP = 159
RIGHT_EYE_TOP = 386

# 每只眼睛三组上下眼睑点（中央、内侧、外侧）
LEFT_EYELID_PAIRS = [(159, 145), (158, 173), (157, 144)]
RIGHT_EYELID_PAIRS = [(386, 374), (385, 398), (384, 373)]


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def to_landmark_point(raw: Any) -> Optional[LandmarkPoint]:
    """
    将单个原始关键点转换为 LandmarkPoint。

    支持 LandmarkPoint、dict、(x, y[, z]) 序列以及带 x/y 属性的对象
    （如 MediaPipe NormalizedLandmark）。无法解析时返回 None。
    """
    if raw is None:
        return None
    if isinstance(raw, LandmarkPoint):
        return raw

    if isinstance(raw, dict):
        x, y, z = raw.get("x"), raw.get("y"), raw.get("z")
    elif isinstance(raw, (tuple, list, np.ndarray)):
        if len(raw) < 2:
            return None
        x, y = raw[0], raw[1]
        z = raw[2] if len(raw) > 2 else None
    else:
        x, y, z = getattr(raw, "x", None), getattr(raw, "y", None), getattr(raw, "z", None)

    x, y = _to_float(x), _to_float(y)
    if x is None or y is None:
        return None
    return LandmarkPoint(x=x, y=y, z=_to_float(z) if z is not None else None)


def normalize_landmarks(raw: Any) -> Optional[LandmarkSet]:
    """
    将检测器输出转换为 LandmarkSet。

    Args:
        raw: 关键点序列、(N, 2|3) numpy 数组，或带 landmark 属性的 MediaPipe 结果

    Returns:
        长度为 468 的元组；输入不是序列或少于 468 个点时返回 None。
        超过 468 个点（含虹膜点的 478 点网格）时只保留前 468 个。
    """
    if raw is None or isinstance(raw, (str, bytes, dict)):
        return None

    if hasattr(raw, "landmark"):
        # MediaPipe NormalizedLandmarkList
        try:
            raw = list(raw.landmark)
        except TypeError:
            return None

    if isinstance(raw, np.ndarray):
        if raw.ndim != 2 or raw.shape[1] < 2:
            return None
        raw = raw.tolist()

    # 集合等无序容器不能按索引取点
    if not isinstance(raw, Sequence):
        return None

    if len(raw) < LANDMARK_COUNT:
        return None

    return tuple(to_landmark_point(raw[i]) for i in range(LANDMARK_COUNT))


def is_valid_landmark_set(landmarks: Any) -> bool:
    """判断是否为已规范化的 468 点集合"""
    return isinstance(landmarks, tuple) and len(landmarks) == LANDMARK_COUNT
