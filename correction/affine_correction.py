"""二维仿射姿态校正模块，根据头部姿态角生成仿射矩阵并作用于图像"""

import asyncio
import base64
import binascii
import inspect
import logging
import math
from typing import Any, Optional, Tuple

import cv2
import numpy as np

from detectors.face_landmarks import NOSE_TIP, normalize_landmarks
from models.data_models import CorrectionParams, CorrectionResult, PoseAngles

logger = logging.getLogger(__name__)

# yaw 引起的剪切阻尼系数（经验值）
YAW_SKEW_DAMPING = 0.3

# 校正后姿态的估计改善比例（经验值）
ROLL_IMPROVEMENT = 0.8
PITCH_IMPROVEMENT = 0.6
YAW_IMPROVEMENT = 0.7

DEFAULT_JPEG_QUALITY = 95


class CorrectionError(RuntimeError):
    """仿射校正失败"""


class ImageDecodeError(CorrectionError):
    """源图像无法解码"""


class RenderError(CorrectionError):
    """光栅化器绘制失败"""


def decode_image(source: Any) -> np.ndarray:
    """
    将图像来源解码为 BGR 数组。

    Args:
        source: numpy 数组、编码后的字节、base64 字符串或 data URL

    Returns:
        BGR 格式的 OpenCV 图像

    Raises:
        ImageDecodeError: 无法解码
    """
    if isinstance(source, np.ndarray):
        if source.ndim not in (2, 3) or source.size == 0:
            raise ImageDecodeError(f"无效的图像数组: shape={source.shape}")
        return source

    if isinstance(source, str):
        payload = source.split(",", 1)[1] if source.startswith("data:") else source
        try:
            source = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageDecodeError(f"base64 解码失败: {e}") from e

    if not isinstance(source, (bytes, bytearray)) or not source:
        raise ImageDecodeError(f"不支持的图像类型: {type(source).__name__}")

    image = cv2.imdecode(np.frombuffer(source, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError("cv2.imdecode 返回 None，图像数据已损坏")
    return image


def image_to_data_url(image: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> str:
    """将图像编码为 JPEG data URL"""
    ok, encoded = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RenderError("cv2.imencode 编码失败")
    return "data:image/jpeg;base64," + base64.b64encode(encoded.tobytes()).decode("ascii")


class OpenCvRasterizer:
    """使用 cv2.warpAffine 绘制变换后的图像，输出尺寸与源图一致"""

    def draw_transformed(self, image: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        h, w = image.shape[:2]
        try:
            return cv2.warpAffine(
                image, matrix, (w, h),
                flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT,
            )
        except cv2.error as e:
            raise RenderError(f"warpAffine 失败: {e}") from e


def compute_anchor(landmarks: Any, width: int, height: int) -> Tuple[float, float]:
    """以鼻尖为基准点，缺失时使用图像中心"""
    landmark_set = normalize_landmarks(landmarks)
    nose = landmark_set[NOSE_TIP] if landmark_set is not None else None
    if nose is None:
        return width / 2.0, height / 2.0
    return nose.x * width, nose.y * height


def _finite_angle(angle: float) -> float:
    """非有限角度（inf/NaN）按 0 处理，对应轴不做校正"""
    return angle if math.isfinite(angle) else 0.0


def calculate_correction_params(
    pose: PoseAngles,
    center: Tuple[float, float],
) -> CorrectionParams:
    """
    计算仿射校正参数。

    roll 按平面内旋转精确处理，pitch/yaw 以缩放和剪切一阶近似，
    并非真正的三维反投影。角度取反表示朝测得倾斜的反方向校正。
    平移量保证基准点映射回自身。
    """
    center_x, center_y = center
    roll = _finite_angle(pose.roll)
    pitch = _finite_angle(pose.pitch)
    yaw = _finite_angle(pose.yaw)
    roll_rad = -roll * math.pi / 180.0
    pitch_rad = -pitch * math.pi / 180.0
    yaw_rad = -yaw * math.pi / 180.0

    cos_roll = math.cos(roll_rad)
    sin_roll = math.sin(roll_rad)
    pitch_scale = math.cos(pitch_rad)
    yaw_scale = math.cos(yaw_rad)
    yaw_skew = math.sin(yaw_rad) * YAW_SKEW_DAMPING

    scale_x = cos_roll * yaw_scale
    skew_x = -sin_roll
    skew_y = sin_roll * pitch_scale + yaw_skew
    scale_y = cos_roll * pitch_scale

    translate_x = center_x - (center_x * scale_x + center_y * skew_y)
    translate_y = center_y - (center_x * skew_x + center_y * scale_y)

    return CorrectionParams(
        scale_x=scale_x,
        skew_x=skew_x,
        skew_y=skew_y,
        scale_y=scale_y,
        translate_x=translate_x,
        translate_y=translate_y,
        center_x=center_x,
        center_y=center_y,
        roll_correction=roll,
        pitch_correction=pitch,
        yaw_correction=yaw,
    )


def _improve(angle: float, fraction: float) -> float:
    angle = _finite_angle(angle)
    improvement = min(abs(angle) * fraction, abs(angle))
    return angle - improvement if angle > 0 else angle + improvement


def estimate_corrected_pose(pose: PoseAngles) -> PoseAngles:
    """
    估计校正后的姿态。

    启发式的部分改善，不从校正后图像重新测量；符号保持不变。
    """
    return PoseAngles(
        roll=_improve(pose.roll, ROLL_IMPROVEMENT),
        pitch=_improve(pose.pitch, PITCH_IMPROVEMENT),
        yaw=_improve(pose.yaw, YAW_IMPROVEMENT),
    )


class AffineCorrectionEngine:
    """按姿态角对单张图像做仿射校正"""

    def __init__(self, rasterizer: Optional[Any] = None):
        """rasterizer 需提供 draw_transformed(image, matrix)，可为同步或可等待"""
        self.rasterizer = rasterizer or OpenCvRasterizer()

    async def correct(self, image: Any, pose: PoseAngles, landmarks: Any = None) -> CorrectionResult:
        """
        校正图像。

        Args:
            image: 源图像（numpy 数组、字节、base64 或 data URL）
            pose: 拍摄时的头部姿态
            landmarks: 可选的 468 点关键点，用于确定鼻尖基准点

        Returns:
            CorrectionResult

        Raises:
            ImageDecodeError: 源图像无法解码
            RenderError: 光栅化失败
        """
        decoded = await asyncio.to_thread(decode_image, image)
        h, w = decoded.shape[:2]

        params = calculate_correction_params(pose, compute_anchor(landmarks, w, h))
        logger.debug(
            "校正参数: scale=(%.4f, %.4f) skew=(%.4f, %.4f) center=(%.1f, %.1f)",
            params.scale_x, params.scale_y, params.skew_x, params.skew_y,
            params.center_x, params.center_y,
        )

        corrected = await self._render(decoded, params.as_matrix())

        return CorrectionResult(
            corrected_image=corrected,
            correction_params=params,
            original_pose=PoseAngles(**pose.as_dict()),
            estimated_corrected_pose=estimate_corrected_pose(pose),
        )

    async def _render(self, image: np.ndarray, matrix: np.ndarray) -> Any:
        draw = self.rasterizer.draw_transformed
        try:
            if inspect.iscoroutinefunction(draw):
                rendered = await draw(image, matrix)
            else:
                rendered = await asyncio.to_thread(draw, image, matrix)
                if inspect.isawaitable(rendered):
                    rendered = await rendered
        except CorrectionError:
            raise
        except Exception as e:
            raise RenderError(f"光栅化失败: {e}") from e

        if rendered is None:
            raise RenderError("光栅化器未返回图像")
        return rendered
