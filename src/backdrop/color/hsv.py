"""RGB <-> HSV 转换（OpenCV float32 路径；所有分量均为 [0, 1]，色相单位为整圈）。

说明：
- cv2 的浮点 HSV 约定为 H∈[0, 360)、S/V∈[0, 1]；这里统一换算成整圈，便于与目标色相 t 直接比较。
- cvtColor 只接受图像形状，任意 (..., 3) 输入先摊平成 N×1×3 再还原。
"""

from __future__ import annotations

import cv2
import numpy as np


def _as_image(x: np.ndarray) -> tuple[np.ndarray, tuple[int, ...]]:
    arr = np.array(x, dtype=np.float32)
    if arr.shape[-1] != 3:
        raise ValueError(f"expected (..., 3) array, got shape={arr.shape}")
    return np.ascontiguousarray(arr.reshape(-1, 1, 3)), arr.shape


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """(..., 3) 的 RGB -> (..., 3) 的 HSV（float32），hue ∈ [0, 1)。

    灰色（max == min）的 hue 与 saturation 为 0。
    """

    img, shape = _as_image(rgb)
    hsv = cv2.cvtColor(img, cv2.COLOR_RGB2HSV_FULL).reshape(shape)
    h = hsv[..., 0] / np.float32(360.0)
    # 负角度补 360 后可能舍入成 360.0。
    hsv[..., 0] = np.where(h >= 1.0, np.float32(0.0), h)
    return hsv


def hsv_to_rgb(hsv: np.ndarray) -> np.ndarray:
    """(..., 3) 的 HSV -> (..., 3) 的 RGB（float32），hue 先按整圈回绕。"""

    img, shape = _as_image(hsv)
    h = np.mod(img[..., 0], np.float32(1.0))
    img[..., 0] = np.where(h >= 1.0, np.float32(0.0), h) * np.float32(360.0)
    return cv2.cvtColor(img, cv2.COLOR_HSV2RGB_FULL).reshape(shape)
