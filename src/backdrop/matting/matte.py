"""alpha matte 生成：把低分辨率二值 mask 平滑、整形并放大到彩色帧分辨率。

流程（顺序固定）：
    1) 边缘按“夹紧”处理（BORDER_REPLICATE），帧外不会渗入 0；
    2) 高斯模糊（sigma = blur_radius），软化硬边；
    3) gamma 重映射 value ** gamma（gamma<1 时过渡带整体向 1 抬升）；
    4) 裁回 mask 原尺寸（OpenCV 的模糊不扩展画布，这一步天然成立）；
    5) 双三次插值放大到彩色帧分辨率，并夹紧到 [0, 1]（双三次会有轻微过冲）。
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

DEFAULT_BLUR_RADIUS = 5.0
DEFAULT_GAMMA = 0.5


def generate_alpha_matte(
    mask: np.ndarray,
    *,
    target_size: tuple[int, int],
    blur_radius: float = DEFAULT_BLUR_RADIUS,
    gamma: float = DEFAULT_GAMMA,
) -> np.ndarray:
    """生成连续 alpha matte。

    Args:
        mask: Hd×Wd 二值 mask（0/1）。
        target_size: 目标尺寸 (W, H)，即彩色帧尺寸。
        blur_radius: 高斯模糊半径（作为 sigma 使用；<=0 表示不模糊）。
        gamma: 幂次。

    Returns:
        H×W 的 float32 matte，取值 [0, 1]。
    """

    m = np.asarray(mask, dtype=np.float32)

    if float(blur_radius) > 0:
        m = cv2.GaussianBlur(
            m,
            (0, 0),
            sigmaX=float(blur_radius),
            sigmaY=float(blur_radius),
            borderType=cv2.BORDER_REPLICATE,
        )

    # 模糊后的浮点误差可能产生极小负数，先夹紧再开幂，避免 NaN。
    m = np.power(np.clip(m, 0.0, 1.0), np.float32(gamma), dtype=np.float32)

    tw, th = int(target_size[0]), int(target_size[1])
    if (m.shape[1], m.shape[0]) != (tw, th):
        m = cv2.resize(m, (tw, th), interpolation=cv2.INTER_CUBIC)

    return np.clip(m, 0.0, 1.0).astype(np.float32, copy=False)


@dataclass(frozen=True)
class AlphaMatteGenerator:
    blur_radius: float = DEFAULT_BLUR_RADIUS
    gamma: float = DEFAULT_GAMMA

    def generate(self, mask: np.ndarray, *, target_size: tuple[int, int]) -> np.ndarray:
        return generate_alpha_matte(
            mask,
            target_size=target_size,
            blur_radius=float(self.blur_radius),
            gamma=float(self.gamma),
        )
