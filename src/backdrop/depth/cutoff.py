"""自适应深度阈值：由人脸位置推导前景深度上限。

规则：
- 有人脸：把人脸中心从彩色帧坐标缩放到深度帧坐标（x 按 Wd/W，y 按 Hd/H），
  四舍五入到整数像素并夹紧到深度帧范围内，取该点深度 + margin 作为新阈值。
- 无人脸：阈值保持不变（sticky）。这是常见情况，不算错误。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from backdrop.models import FaceRegion

logger = logging.getLogger(__name__)

DEFAULT_DEPTH_MARGIN_M = 0.25


def _round_half_away(x: float) -> int:
    # 与 round() 的银行家舍入不同：0.5 一律远离 0。
    return int(math.floor(x + 0.5)) if x >= 0 else -int(math.floor(-x + 0.5))


def face_center_to_depth_pixel(
    *,
    face: FaceRegion,
    color_size: tuple[int, int],
    depth_shape: tuple[int, int],
) -> tuple[int, int]:
    """把人脸中心映射为深度帧上的像素坐标 (x, y)，保证落在深度帧范围内。

    Args:
        face: 彩色帧坐标系下的人脸框。
        color_size: 彩色帧尺寸 (W, H)。
        depth_shape: 深度帧 shape (Hd, Wd)。
    """

    w, h = int(color_size[0]), int(color_size[1])
    hd, wd = int(depth_shape[0]), int(depth_shape[1])
    cx, cy = face.center

    px = _round_half_away(float(cx) * float(wd) / float(max(1, w)))
    py = _round_half_away(float(cy) * float(hd) / float(max(1, h)))

    # 检测框可能越界（或中心落在最后一列/行之外），必须夹紧后再读。
    px = int(min(max(px, 0), wd - 1))
    py = int(min(max(py, 0), hd - 1))
    return px, py


def estimate_depth_cutoff(
    *,
    depth: np.ndarray,
    face: Optional[FaceRegion],
    color_size: tuple[int, int],
    current_cutoff: float,
    margin_m: float = DEFAULT_DEPTH_MARGIN_M,
) -> float:
    """估计本 tick 的深度阈值。

    Returns:
        新阈值；无人脸或采样点无有效深度时原样返回 current_cutoff。
    """

    if face is None:
        return float(current_cutoff)

    px, py = face_center_to_depth_pixel(face=face, color_size=color_size, depth_shape=depth.shape[:2])
    sampled = float(depth[py, px])

    # 采样点无有效读数时沿用旧值，保证阈值始终 > 0。
    if not math.isfinite(sampled) or sampled <= 0:
        logger.debug("face depth sample invalid at (%d, %d): %r; keep cutoff=%.3f", px, py, sampled, current_cutoff)
        return float(current_cutoff)

    return sampled + float(margin_m)


@dataclass(frozen=True)
class DepthCutoffEstimator:
    """带固定 margin 的深度阈值估计器。"""

    margin_m: float = DEFAULT_DEPTH_MARGIN_M

    def estimate(
        self,
        depth: np.ndarray,
        face: Optional[FaceRegion],
        *,
        color_size: tuple[int, int],
        current_cutoff: float,
    ) -> float:
        return estimate_depth_cutoff(
            depth=depth,
            face=face,
            color_size=color_size,
            current_cutoff=float(current_cutoff),
            margin_m=float(self.margin_m),
        )
