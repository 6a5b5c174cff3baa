import json
import os
import sys

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pytest
from hypothesis import settings

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def before_image():
    """64x48 的 BGR Before 照片，中间有一块亮区"""
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[10:30, 20:40] = 200
    return image


@pytest.fixture
def fast_config(tmp_path):
    """校准窗口缩短为 3 帧的配置文件路径"""
    cfg_file = tmp_path / "config.json"
    cfg_file.write_text(json.dumps({"calibration_frames": 3}), encoding="utf-8")
    return str(cfg_file)
