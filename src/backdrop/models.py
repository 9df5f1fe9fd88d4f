"""backdrop 公共数据模型（高内聚：只放数据结构定义）。

说明：
- 这些数据结构会被 pipeline/sources/apps/tests 共同使用。
- 图像统一使用 OpenCV 约定：彩色帧为 H×W×4 的 uint8，通道顺序 BGRA。
- 深度帧为 Hd×Wd 的 float32（单位：米），<=0 或 NaN 表示该像素无有效读数。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class FaceRegion:
    """单个人脸检测框。

    bbox 坐标为彩色帧像素坐标系下的 (x1, y1, x2, y2)。
    """

    bbox: tuple[float, float, float, float]

    @property
    def center(self) -> tuple[float, float]:
        x1, y1, x2, y2 = self.bbox
        return (0.5 * (x1 + x2), 0.5 * (y1 + y2))


@dataclass(frozen=True)
class FrameTick:
    """同步层交付的一组帧（color + depth + face）。

    约定：
    - color_dropped / depth_dropped 由同步层给出；任一为 True 时整组跳过。
    - depth/face 均可缺失；face 最多使用一个。
    """

    color: np.ndarray
    depth: Optional[np.ndarray] = None
    face: Optional[FaceRegion] = None
    color_dropped: bool = False
    depth_dropped: bool = False
    tick_index: int = 0
    timestamp_s: Optional[float] = None

    @property
    def dropped(self) -> bool:
        return bool(self.color_dropped) or bool(self.depth_dropped)

    @property
    def color_size(self) -> tuple[int, int]:
        """彩色帧尺寸 (width, height)。"""

        return (int(self.color.shape[1]), int(self.color.shape[0]))


@dataclass(frozen=True)
class OutputFrame:
    """一次成功处理后的输出帧。"""

    image: np.ndarray
    tick_index: int
    timestamp_s: Optional[float]
    depth_cutoff: float
    matted: bool
    hue: float

    def to_record(self) -> dict:
        """转成可 JSON 序列化的记录（不含像素数据）。"""

        h, w = int(self.image.shape[0]), int(self.image.shape[1])
        return {
            "tick_index": int(self.tick_index),
            "timestamp_s": float(self.timestamp_s) if self.timestamp_s is not None else None,
            "width": w,
            "height": h,
            "depth_cutoff": float(self.depth_cutoff),
            "matted": bool(self.matted),
            "hue": float(self.hue),
        }


__all__ = [
    "FaceRegion",
    "FrameTick",
    "OutputFrame",
]
