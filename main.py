"""Before/After 拍摄会话回放入口，用录制的关键点数据跑通完整拍摄流程"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional, Tuple

import cv2

from correction.affine_correction import AffineCorrectionEngine, CorrectionError
from detectors.expression_analyzer import ExpressionAnalyzer
from evaluators.pose_comparator import PoseComparator
from models.data_models import (
    GuidanceMessage,
    LandmarkFrame,
    PoseAngles,
    PoseComparison,
    ReferenceData,
)
from storage.pose_reference import PoseReferenceStore
from storage.reference_codec import encode_reference, parse_points

# 默认参数
_DEFAULTS = {
    "roll_tolerance": 2.0,
    "pitch_tolerance": 4.0,
    "yaw_tolerance": 1.5,
    "calibration_frames": 60,
    "smile_threshold": 0.3,
    "eyebrow_threshold": 0.25,
    "eye_tension_threshold": 0.3,
    "jpeg_quality": 95,
}


def parse_frames(raw_frames) -> List[LandmarkFrame]:
    """将会话 JSON 中的帧列表转换为 LandmarkFrame"""
    frames = []
    for raw in raw_frames or []:
        if not isinstance(raw, dict):
            continue
        pose = raw.get("pose")
        if pose is not None and not isinstance(pose, dict):
            continue
        try:
            pose_angles = PoseAngles.from_mapping(pose)
        except (TypeError, ValueError):
            # 姿态轴不是数值，跳过该帧
            continue
        frames.append(LandmarkFrame(landmarks=raw.get("landmarks"), pose=pose_angles))
    return frames


class CaptureSession:
    """串联表情判定、仿射校正、参考存储和姿态比较，模拟一次 Before/After 拍摄"""

    def __init__(self, config_path=None):
        config = self._load_config(config_path)
        self.config = config

        self.expression_analyzer = ExpressionAnalyzer(
            calibration_frames=int(config["calibration_frames"]),
            smile_threshold=config["smile_threshold"],
            eyebrow_threshold=config["eyebrow_threshold"],
            eye_tension_threshold=config["eye_tension_threshold"],
        )
        self.pose_comparator = PoseComparator(
            roll=config["roll_tolerance"],
            pitch=config["pitch_tolerance"],
            yaw=config["yaw_tolerance"],
        )
        self.correction_engine = AffineCorrectionEngine()
        self.reference_store = PoseReferenceStore()

    @staticmethod
    def _load_config(config_path):
        """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
        config = dict(_DEFAULTS)

        if config_path is None:
            return config

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            print(f"警告: 配置文件不存在 {config_path}，使用默认参数")
            return config
        except json.JSONDecodeError:
            print(f"警告: 配置文件格式错误 {config_path}，使用默认参数")
            return config

        for key in _DEFAULTS:
            if key in data and data[key] is not None:
                config[key] = data[key]

        return config

    def capture_before(self, frames: List[LandmarkFrame], image, correct: bool = True) -> Optional[ReferenceData]:
        """
        逐帧判定表情，在第一帧校准完成且表情可接受的帧上完成 Before 拍摄。

        Args:
            frames: Before 阶段的帧序列
            image: Before 照片（字节、base64 或 numpy 数组）
            correct: 是否执行仿射校正

        Returns:
            保存后的 ReferenceData；没有可用帧时返回 None
        """
        for index, frame in enumerate(frames):
            score = self.expression_analyzer.analyze(frame.landmarks)
            if not score.is_calibrated or not self.expression_analyzer.is_expression_acceptable(score):
                continue

            print(f"Before 拍摄: 第 {index + 1} 帧, 表情分 {score.overall_score}")
            self.reference_store.set_reference(frame.pose, image, frame.landmarks)

            if correct:
                try:
                    result = asyncio.run(
                        self.correction_engine.correct(image, frame.pose, frame.landmarks)
                    )
                except CorrectionError as e:
                    # 校正失败不影响拍摄，跳过校正
                    print(f"警告: 仿射校正失败 - {e}")
                else:
                    self.reference_store.set_correction_result(result)
            return self.reference_store.get_reference()

        return None

    def load_reference(self, points: str) -> bool:
        """从 points 载荷恢复 Before 参考"""
        reference = parse_points(points)
        if reference is None:
            return False
        return self.reference_store.set_reference(reference.pose, reference.image, reference.landmarks)

    def compare_after(self, frames: List[LandmarkFrame]) -> List[Tuple[PoseComparison, GuidanceMessage]]:
        """将 After 阶段每帧姿态与 Before 参考比较，未设置参考时返回空列表"""
        reference = self.reference_store.get_reference()
        if reference is None:
            return []

        results = []
        for frame in frames:
            comparison = self.pose_comparator.compare(reference.pose, frame.pose)
            results.append((comparison, self.pose_comparator.generate_guidance(comparison)))
        return results


def _load_session(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        print(f"无法读取会话文件 {path}: {e}")
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"会话文件格式错误 {path}: 顶层应为对象")
        sys.exit(1)
    return parse_frames(data.get("before")), parse_frames(data.get("after"))


def main():
    parser = argparse.ArgumentParser(description="Before/After 拍摄会话回放")
    parser.add_argument("--session", type=str, required=True, help="录制的关键点会话 JSON 文件")
    parser.add_argument("--image", type=str, default=None, help="Before 照片路径")
    parser.add_argument("--output", type=str, default=None, help="校正后图像输出路径")
    parser.add_argument("--reference", type=str, default=None, help="已保存的 Before points 文件，指定时跳过 Before 阶段")
    parser.add_argument("--export-reference", type=str, default=None, help="导出 Before points 载荷的路径")
    parser.add_argument("--config", type=str, default=None, help="JSON 参数配置文件路径")
    parser.add_argument("--no-correction", action="store_true", help="不执行仿射校正")
    args = parser.parse_args()

    session = CaptureSession(config_path=args.config)
    before_frames, after_frames = _load_session(args.session)

    if args.reference:
        with open(args.reference, "r", encoding="utf-8") as f:
            if not session.load_reference(f.read()):
                print("Before points 格式无法识别")
                sys.exit(1)
    else:
        if args.image is None:
            print("未指定 --image 或 --reference")
            sys.exit(1)
        with open(args.image, "rb") as f:
            image = f.read()

        reference = session.capture_before(before_frames, image, correct=not args.no_correction)
        if reference is None:
            print("Before 阶段没有可接受的帧")
            sys.exit(1)

        result = reference.correction_result
        if result is not None:
            print(f"原始姿态: {result.original_pose}")
            print(f"校正后估计姿态: {result.estimated_corrected_pose}")
            if args.output:
                cv2.imwrite(args.output, result.corrected_image,
                            [int(cv2.IMWRITE_JPEG_QUALITY), int(session.config["jpeg_quality"])])
                print(f"校正图像已保存: {args.output}")

        if args.export_reference:
            with open(args.export_reference, "w", encoding="utf-8") as f:
                f.write(encode_reference(reference))

    results = session.compare_after(after_frames)
    for index, (comparison, guidance) in enumerate(results, start=1):
        print(f"[After {index}] {comparison.match_percentage}% {guidance.type}: {guidance.message}")

    matched = sum(1 for comparison, _ in results if comparison.overall_match)
    print(f"After 阶段匹配帧: {matched}/{len(results)}")


if __name__ == "__main__":
    main()
