"""核心数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple

import numpy as np


# 人脸网格关键点数量（MediaPipe FaceMesh 拓扑）
LANDMARK_COUNT = 468

POSE_AXES = ("roll", "pitch", "yaw")


@dataclass
class PoseAngles:
    """头部姿态角（单位：度）"""
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[dict]) -> "PoseAngles":
        """从字典构建姿态，缺失或为 None 的轴按 0 处理"""
        data = data or {}
        return cls(**{axis: float(data.get(axis) or 0.0) for axis in POSE_AXES})

    def as_dict(self) -> dict:
        return {"roll": self.roll, "pitch": self.pitch, "yaw": self.yaw}


@dataclass(frozen=True)
class LandmarkPoint:
    """单个归一化关键点，x/y 位于 [0, 1]"""
    x: float
    y: float
    z: Optional[float] = None


# 固定 468 个槽位，无法解析的点为 None
LandmarkSet = Tuple[Optional[LandmarkPoint], ...]


@dataclass
class LandmarkFrame:
    """检测器每帧提供的快照"""
    landmarks: Any
    pose: PoseAngles


@dataclass
class CorrectionParams:
    """仿射校正参数"""
    scale_x: float
    skew_x: float
    skew_y: float
    scale_y: float
    translate_x: float
    translate_y: float
    center_x: float
    center_y: float
    roll_correction: float
    pitch_correction: float
    yaw_correction: float

    def as_matrix(self) -> np.ndarray:
        """
        返回 2x3 仿射矩阵。

        映射关系: x' = scale_x*x + skew_y*y + translate_x
                  y' = skew_x*x + scale_y*y + translate_y
        """
        return np.array([
            [self.scale_x, self.skew_y, self.translate_x],
            [self.skew_x, self.scale_y, self.translate_y],
        ], dtype=np.float64)


@dataclass
class CorrectionResult:
    """仿射校正结果"""
    corrected_image: Any
    correction_params: CorrectionParams
    original_pose: PoseAngles
    estimated_corrected_pose: PoseAngles


@dataclass
class Measurements:
    """单帧表情测量值"""
    mouth_height: float
    eyebrow_height: float
    eye_openness: float
    face_height: float


# 基线与单帧测量结构相同，基线为校准窗口内各项的中位数
BaselineData = Measurements


@dataclass
class ExpressionScore:
    """表情评分结果"""
    mouth_smile: float
    eyebrow_raise: float
    eye_tension: float
    overall_score: int
    is_calibrated: bool
    calibration_progress: Optional[float] = None
    measurements: Optional[Measurements] = None
    baseline: Optional[BaselineData] = None


@dataclass
class ExpressionSettings:
    """表情可接受判定阈值"""
    smile_threshold: float = 0.3
    eyebrow_threshold: float = 0.25
    eye_tension_threshold: float = 0.3


@dataclass
class ToleranceConfig:
    """各轴姿态容差（度）"""
    roll: float = 2.0
    pitch: float = 4.0
    yaw: float = 1.5


@dataclass
class PoseAdjustment:
    """单轴调整建议"""
    axis: str
    direction: str
    amount: float


@dataclass
class PoseComparison:
    """参考姿态与当前姿态的比较结果"""
    differences: PoseAngles
    deviations: PoseAngles
    within_tolerance: dict
    overall_match: bool
    adjustments: List[PoseAdjustment]
    match_percentage: int


@dataclass
class GuidanceMessage:
    """引导提示，type 为 success | warning | reference"""
    message: str
    type: str


@dataclass
class ReferenceData:
    """Before 拍摄的参考信息"""
    pose: PoseAngles
    image: Any
    landmarks: Optional[LandmarkSet]
    timestamp: datetime
    correction_result: Optional[CorrectionResult] = field(default=None)
