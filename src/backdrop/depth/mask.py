"""深度阈值分割：把深度帧转成二值前景 mask。"""

from __future__ import annotations

import numpy as np


def build_segmentation_mask(depth: np.ndarray, cutoff: float) -> np.ndarray:
    """mask=1 当且仅当 0 < depth <= cutoff，否则为 0。

    说明：
        - “太远”和“无效/0 深度”都归为背景；NaN 比较恒为 False，同样归为背景。
        - 不原地修改输入深度帧（输入归调用方所有）。

    Returns:
        与 depth 同尺寸的 float32 mask（取值 0.0/1.0）。
    """

    d = np.asarray(depth, dtype=np.float32)
    with np.errstate(invalid="ignore"):
        fg = (d > 0.0) & (d <= np.float32(cutoff))
    return fg.astype(np.float32)
