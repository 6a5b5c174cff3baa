"""表情分析模块，基于个人基线判断笑容、挑眉和眼部用力程度"""

import logging
import math
from enum import Enum
from typing import Any, Optional

from calibration.baseline_calibrator import DEFAULT_WINDOW_SIZE, BaselineCalibrator
from detectors.face_landmarks import normalize_landmarks
from detectors.face_measurements import extract_measurements
from models.data_models import BaselineData, ExpressionScore, ExpressionSettings, Measurements

logger = logging.getLogger(__name__)

# 检测灵敏度（经验值）
SMILE_SENSITIVITY = 50.0
EYEBROW_SENSITIVITY = 25.0
EYE_TENSION_SENSITIVITY = 100.0

# 对外输出的显示尺度，与检测灵敏度无关
SMILE_DISPLAY_DIVISOR = 10.0
EYEBROW_DISPLAY_DIVISOR = 10.0
EYE_TENSION_DISPLAY_FACTOR = 40.0

# 减分权重与上限: (权重, 上限)
SMILE_PENALTY = (20.0, 30.0)
EYEBROW_PENALTY = (25.0, 35.0)
EYE_TENSION_PENALTY = (15.0, 25.0)


class CalibrationState(Enum):
    UNCALIBRATED = "uncalibrated"
    CALIBRATING = "calibrating"
    CALIBRATED = "calibrated"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ExpressionAnalyzer:
    """
    先用前 N 帧校准中性脸基线，之后逐帧计算与基线的偏差并给出 0-100 分。

    状态: UNCALIBRATED -> CALIBRATING -> CALIBRATED，只有 reset_calibration()
    能回到 UNCALIBRATED。
    """

    def __init__(
        self,
        calibration_frames: int = DEFAULT_WINDOW_SIZE,
        smile_threshold: float = 0.3,
        eyebrow_threshold: float = 0.25,
        eye_tension_threshold: float = 0.3,
    ):
        """初始化校准器和可接受阈值"""
        self._calibrator = BaselineCalibrator(window_size=calibration_frames)
        self._settings = ExpressionSettings(
            smile_threshold=smile_threshold,
            eyebrow_threshold=eyebrow_threshold,
            eye_tension_threshold=eye_tension_threshold,
        )
        self._baseline: Optional[BaselineData] = None

    @property
    def state(self) -> CalibrationState:
        if self._baseline is not None:
            return CalibrationState.CALIBRATED
        if self._calibrator.frame_count > 0:
            return CalibrationState.CALIBRATING
        return CalibrationState.UNCALIBRATED

    @property
    def is_calibrated(self) -> bool:
        return self._baseline is not None

    @property
    def baseline(self) -> Optional[BaselineData]:
        return self._baseline

    def analyze(self, landmarks: Any) -> ExpressionScore:
        """
        分析单帧表情。

        Args:
            landmarks: 检测器输出的关键点，任意可被 normalize_landmarks 接受的形式

        Returns:
            ExpressionScore；关键点无效时返回默认评分，不会抛出异常
        """
        landmark_set = normalize_landmarks(landmarks)
        if landmark_set is None:
            return self._default_score()

        if self._baseline is None:
            complete = self._calibrator.add_frame(landmark_set)
            if not complete:
                return self._default_score()

            self._baseline = self._calibrator.compute_baseline()

        current = extract_measurements(landmark_set)
        return self._score(current, self._baseline)

    def is_expression_acceptable(self, score: ExpressionScore) -> bool:
        """未校准时放行；校准后三项指标都需低于阈值"""
        if not score.is_calibrated:
            return True

        return (
            score.mouth_smile < self._settings.smile_threshold
            and score.eyebrow_raise < self._settings.eyebrow_threshold
            and score.eye_tension < self._settings.eye_tension_threshold
        )

    def reset_calibration(self):
        """丢弃基线和校准缓冲区"""
        self._baseline = None
        self._calibrator.reset()
        logger.info("表情基线已重置")

    def get_settings(self) -> ExpressionSettings:
        return ExpressionSettings(**vars(self._settings))

    def _default_score(self) -> ExpressionScore:
        progress = None
        if self.state is CalibrationState.CALIBRATING:
            progress = self._calibrator.progress
        return ExpressionScore(
            mouth_smile=0.0,
            eyebrow_raise=0.0,
            eye_tension=0.0,
            overall_score=100,
            is_calibrated=False,
            calibration_progress=progress,
        )

    def _score(self, current: Measurements, baseline: BaselineData) -> ExpressionScore:
        face_scale = 1.0
        if current.face_height > 0 and baseline.face_height > 0:
            face_scale = current.face_height / baseline.face_height

        smile = self._deviation(current.mouth_height, baseline.mouth_height, face_scale, SMILE_SENSITIVITY)
        eyebrow = self._deviation(current.eyebrow_height, baseline.eyebrow_height, face_scale, EYEBROW_SENSITIVITY)
        # 睁眼程度低于基线视为眼部用力，方向与另外两项相反
        tension = self._deviation(baseline.eye_openness, current.eye_openness, face_scale, EYE_TENSION_SENSITIVITY)

        return ExpressionScore(
            mouth_smile=smile / SMILE_DISPLAY_DIVISOR,
            eyebrow_raise=eyebrow / EYEBROW_DISPLAY_DIVISOR,
            eye_tension=tension * EYE_TENSION_DISPLAY_FACTOR,
            overall_score=self.calculate_overall_score(smile, eyebrow, tension),
            is_calibrated=True,
            measurements=current,
            baseline=baseline,
        )

    @staticmethod
    def _deviation(value: float, reference: float, face_scale: float, sensitivity: float) -> float:
        difference = value / face_scale - reference / face_scale
        return max(0.0, difference * sensitivity)

    @staticmethod
    def calculate_overall_score(smile: float, eyebrow: float, tension: float) -> int:
        """
        减分制总分。

        Args:
            smile, eyebrow, tension: 未经显示缩放的原始偏差值

        Returns:
            [0, 100] 内的整数分
        """
        penalty = (
            min(smile * SMILE_PENALTY[0], SMILE_PENALTY[1])
            + min(eyebrow * EYEBROW_PENALTY[0], EYEBROW_PENALTY[1])
            + min(tension * EYE_TENSION_PENALTY[0], EYE_TENSION_PENALTY[1])
        )
        return _round_half_up(min(100.0, max(0.0, 100.0 - penalty)))
