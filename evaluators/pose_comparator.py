"""Before/After 姿态比较模块，计算各轴偏差并生成调整引导"""

import math
from typing import List

from models.data_models import (
    POSE_AXES,
    GuidanceMessage,
    PoseAdjustment,
    PoseAngles,
    PoseComparison,
    ToleranceConfig,
)

# 差值为正时的调整方向，否则取相反方向
_DIRECTIONS = {
    "roll": ("left", "right"),
    "pitch": ("down", "up"),
    "yaw": ("left", "right"),
}

_INSTRUCTIONS = {
    ("roll", "left"): "Tilt your head to the left",
    ("roll", "right"): "Tilt your head to the right",
    ("pitch", "up"): "Turn your face slightly upward",
    ("pitch", "down"): "Turn your face slightly downward",
    ("yaw", "left"): "Turn your face to the left",
    ("yaw", "right"): "Turn your face to the right",
}

SUCCESS_MESSAGE = "Perfect! Your pose matches the Before capture"
ADJUST_MESSAGE = "Please adjust your pose"


class PoseComparator:
    """比较参考姿态与当前姿态，输出容差判定、匹配度和调整建议"""

    def __init__(self, **tolerances: float):
        """可按轴覆盖默认容差，例如 PoseComparator(roll=3.0)"""
        self._tolerances = ToleranceConfig()
        self.set_tolerances(**tolerances)

    def set_tolerances(self, **tolerances: float):
        """部分更新容差，未给出的轴保持原值"""
        for axis, value in tolerances.items():
            if axis not in POSE_AXES:
                raise ValueError(f"未知的姿态轴: {axis}")
            if value is None:
                continue
            if value < 0:
                raise ValueError(f"容差不能为负数: {axis}={value}")
            setattr(self._tolerances, axis, float(value))

    def get_tolerances(self) -> ToleranceConfig:
        return ToleranceConfig(**vars(self._tolerances))

    def compare(self, reference: PoseAngles, current: PoseAngles) -> PoseComparison:
        """
        比较两个姿态。

        Args:
            reference: Before 拍摄时保存的姿态
            current: 当前帧姿态

        Returns:
            PoseComparison，adjustments 按 roll、pitch、yaw 顺序排列
        """
        differences = PoseAngles(
            roll=current.roll - reference.roll,
            pitch=current.pitch - reference.pitch,
            yaw=current.yaw - reference.yaw,
        )
        deviations = PoseAngles(
            roll=abs(differences.roll),
            pitch=abs(differences.pitch),
            yaw=abs(differences.yaw),
        )

        within_tolerance = {
            axis: getattr(deviations, axis) <= getattr(self._tolerances, axis)
            for axis in POSE_AXES
        }

        adjustments: List[PoseAdjustment] = []
        for axis in POSE_AXES:
            if within_tolerance[axis]:
                continue
            positive, negative = _DIRECTIONS[axis]
            adjustments.append(PoseAdjustment(
                axis=axis,
                direction=positive if getattr(differences, axis) > 0 else negative,
                amount=getattr(deviations, axis),
            ))

        return PoseComparison(
            differences=differences,
            deviations=deviations,
            within_tolerance=within_tolerance,
            overall_match=all(within_tolerance.values()),
            adjustments=adjustments,
            match_percentage=self._match_percentage(deviations),
        )

    def _match_percentage(self, deviations: PoseAngles) -> int:
        scores = []
        for axis in POSE_AXES:
            deviation = getattr(deviations, axis)
            tolerance = getattr(self._tolerances, axis)
            if tolerance <= 0:
                scores.append(1.0 if deviation == 0 else 0.0)
            else:
                scores.append(max(0.0, 1.0 - deviation / (tolerance * 2)))
        return int(math.floor(sum(scores) / len(scores) * 100 + 0.5))

    def generate_guidance(self, comparison: PoseComparison) -> GuidanceMessage:
        """根据比较结果生成引导提示，优先提示偏差最大的轴"""
        if comparison.overall_match:
            return GuidanceMessage(message=SUCCESS_MESSAGE, type="success")

        if not comparison.adjustments:
            return GuidanceMessage(message=ADJUST_MESSAGE, type="warning")

        # max 在并列时保留第一个，即 roll > pitch > yaw 的顺序
        primary = max(comparison.adjustments, key=lambda adj: adj.amount)
        instruction = _INSTRUCTIONS.get((primary.axis, primary.direction), ADJUST_MESSAGE)

        return GuidanceMessage(
            message=f"{instruction} (diff: {primary.amount:.1f}°)",
            type="reference",
        )

    @staticmethod
    def get_comparison_summary(comparison: PoseComparison) -> str:
        """调试用的多行摘要"""
        lines = [f"Match: {comparison.match_percentage}%"]
        for axis in POSE_AXES:
            lines.append(
                f"{axis.capitalize()} diff: {getattr(comparison.differences, axis):.2f}° "
                f"(deviation: {getattr(comparison.deviations, axis):.2f}°)"
            )
        return "\n".join(lines)
