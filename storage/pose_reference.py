"""Before 参考姿态存储模块，进程内单槽位保存参考姿态、图像和关键点"""

import dataclasses
import logging
from datetime import datetime
from typing import Any, Optional

from detectors.face_landmarks import normalize_landmarks
from models.data_models import CorrectionResult, PoseAngles, ReferenceData

logger = logging.getLogger(__name__)


class PoseReferenceStore:
    """保存最多一份 ReferenceData，set_reference 总是整体覆盖"""

    def __init__(self):
        self._pose: Optional[PoseAngles] = None
        self._image: Any = None
        self._landmarks = None
        self._timestamp: Optional[datetime] = None
        self._correction_result: Optional[CorrectionResult] = None

    def set_reference(self, pose: PoseAngles, image: Any, landmarks: Any = None) -> bool:
        """
        设置 Before 参考信息，覆盖旧值并清除旧的校正结果。

        Returns:
            始终为 True
        """
        self._pose = PoseAngles(**pose.as_dict())
        self._image = image
        self._landmarks = normalize_landmarks(landmarks)
        self._timestamp = datetime.now()
        self._correction_result = None

        logger.info("已设置 Before 参考姿态: %s", self._pose)
        return True

    def get_reference(self) -> Optional[ReferenceData]:
        """返回参考信息副本；姿态、图像或时间戳任一缺失时视为未设置"""
        if self._pose is None or self._image is None or self._timestamp is None:
            return None

        result = self._correction_result
        if result is not None:
            result = dataclasses.replace(
                result,
                correction_params=dataclasses.replace(result.correction_params),
                original_pose=dataclasses.replace(result.original_pose),
                estimated_corrected_pose=dataclasses.replace(result.estimated_corrected_pose),
            )

        return ReferenceData(
            pose=dataclasses.replace(self._pose),
            image=self._image,
            landmarks=self._landmarks,
            timestamp=self._timestamp,
            correction_result=result,
        )

    def set_correction_result(self, result: CorrectionResult):
        """为当前参考附加校正结果；未设置参考时不生效"""
        if self._pose is None:
            logger.warning("尚未设置 Before 参考，忽略校正结果")
            return
        self._correction_result = result
        logger.info("已保存 Before 校正结果: %s", result.correction_params)

    def has_reference(self) -> bool:
        return self.get_reference() is not None

    def clear_reference(self):
        self._pose = None
        self._image = None
        self._landmarks = None
        self._timestamp = None
        self._correction_result = None
        logger.info("已清除 Before 参考姿态")

    def get_display_pose(self) -> Optional[PoseAngles]:
        """有校正结果时返回校正后估计姿态，否则返回原始姿态"""
        reference = self.get_reference()
        if reference is None:
            return None
        if reference.correction_result is not None:
            return dataclasses.replace(reference.correction_result.estimated_corrected_pose)
        return reference.pose
