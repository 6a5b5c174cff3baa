"""Before 参考信息编解码模块，负责 points 载荷与 ReferenceData 的互相转换"""

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any, Optional

import numpy as np

from correction.affine_correction import image_to_data_url
from detectors.face_landmarks import normalize_landmarks
from models.data_models import POSE_AXES, PoseAngles, ReferenceData

logger = logging.getLogger(__name__)


def _encode_image(image: Any) -> str:
    if isinstance(image, np.ndarray):
        return image_to_data_url(image)
    if isinstance(image, (bytes, bytearray)):
        return base64.b64encode(bytes(image)).decode("ascii")
    return str(image)


def _encode_landmarks(landmarks) -> Optional[list]:
    if landmarks is None:
        return None
    encoded = []
    for point in landmarks:
        if point is None:
            encoded.append(None)
        elif point.z is None:
            encoded.append({"x": point.x, "y": point.y})
        else:
            encoded.append({"x": point.x, "y": point.y, "z": point.z})
    return encoded


def encode_reference(reference: ReferenceData) -> str:
    """
    将参考信息编码为 Before 拍摄提交的 JSON points 字符串。

    校正结果只保留姿态和参数，不包含校正后图像。
    """
    payload = {
        "pose": reference.pose.as_dict(),
        "image": _encode_image(reference.image),
        "landmarks": _encode_landmarks(reference.landmarks),
        "timestamp": reference.timestamp.isoformat(),
    }

    result = reference.correction_result
    if result is not None:
        params = result.correction_params
        payload["correctionResult"] = {
            "originalPose": result.original_pose.as_dict(),
            "estimatedCorrectedPose": result.estimated_corrected_pose.as_dict(),
            "correctionInfo": {
                "scaleX": params.scale_x,
                "skewX": params.skew_x,
                "skewY": params.skew_y,
                "scaleY": params.scale_y,
                "translateX": params.translate_x,
                "translateY": params.translate_y,
                "centerX": params.center_x,
                "centerY": params.center_y,
            },
        }

    return json.dumps(payload, ensure_ascii=False)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("无法解析时间戳: %s，使用当前时间", value)
    return datetime.now()


def _from_payload(data: Any) -> Optional[ReferenceData]:
    if not isinstance(data, dict):
        return None

    pose = data.get("pose")
    if not isinstance(pose, dict) or not any(pose.get(axis) is not None for axis in POSE_AXES):
        return None

    try:
        pose_angles = PoseAngles.from_mapping(pose)
    except (TypeError, ValueError):
        return None

    return ReferenceData(
        pose=pose_angles,
        image=data.get("image") or "",
        landmarks=normalize_landmarks(data.get("landmarks")),
        timestamp=_parse_timestamp(data.get("timestamp")),
    )


def parse_points(points: str) -> Optional[ReferenceData]:
    """
    解析 points 字符串。

    依次尝试 JSON 和 base64 编码的 JSON；都不匹配时返回 None。
    附带的 correctionResult 不还原，After 端只需要参考姿态。
    """
    if not points:
        logger.warning("points 数据为空")
        return None

    try:
        reference = _from_payload(json.loads(points))
        if reference is not None:
            return reference
    except json.JSONDecodeError:
        logger.debug("points 不是 JSON 格式，尝试 base64")

    try:
        decoded = base64.b64decode(points, validate=True).decode("utf-8")
        reference = _from_payload(json.loads(decoded))
        if reference is not None:
            return reference
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError):
        logger.debug("points 不是 base64 JSON 格式")

    logger.warning("不支持的 points 格式: %s", points[:100])
    return None
