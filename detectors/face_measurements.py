"""表情测量模块，从 LandmarkSet 提取口、眉、眼和脸高四项测量值

所有纵向距离都相对鼻尖或鼻根计算，以减小人脸位置变化的影响。
"""

from models.data_models import LandmarkSet, Measurements
from detectors.face_landmarks import (
    CHIN_CENTER,
    FOREHEAD_CENTER,
    LEFT_EYE_TOP,
    LEFT_EYEBROW_INDICES,
    LEFT_EYELID_PAIRS,
    MOUTH_INDICES,
    NOSE_BRIDGE,
    NOSE_TIP,
    RIGHT_EYE_TOP,
    RIGHT_EYEBROW_INDICES,
    RIGHT_EYELID_PAIRS,
)

# 缩放系数，使测量值落在便于比较的量级
MOUTH_SCALE = 1000.0
EYEBROW_SCALE = 2000.0

# 缺少额头或下巴点时使用的中性脸高
NEUTRAL_FACE_HEIGHT = 1.0


def calculate_mouth_height(landmarks: LandmarkSet) -> float:
    """
    计算嘴角相对唇中点的上扬程度。

    公式: (lip_center - nose) - (corner_avg - nose)，嘴角越高于唇中点值越大。

    Returns:
        非负测量值，缺少关键点时返回 0.0
    """
    left = landmarks[MOUTH_INDICES["left_corner"]]
    right = landmarks[MOUTH_INDICES["right_corner"]]
    upper = landmarks[MOUTH_INDICES["upper_lip"]]
    lower = landmarks[MOUTH_INDICES["lower_lip"]]
    nose = landmarks[NOSE_TIP]

    if None in (left, right, upper, lower, nose):
        return 0.0

    corner_avg_y = (left.y + right.y) / 2.0
    lip_center_y = (upper.y + lower.y) / 2.0

    corner_to_nose = corner_avg_y - nose.y
    lip_to_nose = lip_center_y - nose.y

    return max(0.0, (lip_to_nose - corner_to_nose) * MOUTH_SCALE)


def calculate_eyebrow_height(landmarks: LandmarkSet) -> float:
    """
    计算眉毛相对上眼睑的高度。

    每侧取可用眉毛点的平均值，以鼻根为基准比较眉与眼的纵向位置。

    Returns:
        非负测量值，任一侧眉毛全缺或缺少眼/鼻根点时返回 0.0
    """
    left_brow = [landmarks[i] for i in LEFT_EYEBROW_INDICES if landmarks[i] is not None]
    right_brow = [landmarks[i] for i in RIGHT_EYEBROW_INDICES if landmarks[i] is not None]
    left_eye_top = landmarks[LEFT_EYE_TOP]
    right_eye_top = landmarks[RIGHT_EYE_TOP]
    bridge = landmarks[NOSE_BRIDGE]

    if not left_brow or not right_brow or None in (left_eye_top, right_eye_top, bridge):
        return 0.0

    left_avg_y = sum(p.y for p in left_brow) / len(left_brow)
    right_avg_y = sum(p.y for p in right_brow) / len(right_brow)
    brow_y = (left_avg_y + right_avg_y) / 2.0
    eye_top_y = (left_eye_top.y + right_eye_top.y) / 2.0

    brow_to_bridge = brow_y - bridge.y
    eye_to_bridge = eye_top_y - bridge.y

    return max(0.0, (eye_to_bridge - brow_to_bridge) * EYEBROW_SCALE)


def _eye_gap(landmarks: LandmarkSet, pairs) -> float:
    gaps = [abs(landmarks[top].y - landmarks[bottom].y) for top, bottom in pairs]
    return sum(gaps) / len(gaps)


def calculate_eye_openness(landmarks: LandmarkSet) -> float:
    """
    计算双眼睁开程度：每只眼三组眼睑间距的平均，再取双眼平均。

    Returns:
        睁眼程度，任一眼睑点缺失时返回 0.0
    """
    for pairs in (LEFT_EYELID_PAIRS, RIGHT_EYELID_PAIRS):
        for top, bottom in pairs:
            if landmarks[top] is None or landmarks[bottom] is None:
                return 0.0

    left = _eye_gap(landmarks, LEFT_EYELID_PAIRS)
    right = _eye_gap(landmarks, RIGHT_EYELID_PAIRS)
    return (left + right) / 2.0


def calculate_face_height(landmarks: LandmarkSet) -> float:
    """额头中央到下巴中央的纵向距离，仅用于尺度归一化"""
    forehead = landmarks[FOREHEAD_CENTER]
    chin = landmarks[CHIN_CENTER]

    if forehead is None or chin is None:
        return NEUTRAL_FACE_HEIGHT

    return abs(forehead.y - chin.y)


def extract_measurements(landmarks: LandmarkSet) -> Measurements:
    """提取单帧的四项测量值"""
    return Measurements(
        mouth_height=calculate_mouth_height(landmarks),
        eyebrow_height=calculate_eyebrow_height(landmarks),
        eye_openness=calculate_eye_openness(landmarks),
        face_height=calculate_face_height(landmarks),
    )
