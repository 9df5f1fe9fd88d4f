"""3D 颜色立方体（LUT）：把参考色相附近的颜色替换为目标色相。

算法（对 N³ 个采样点逐点，向量化实现）：
    1) 采样点 (r, g, b) = (i/N, j/N, k/N)，转 HSV；
    2) 若 hue 严格落在 ((ref - range/2)/360, (ref + range/2)/360) 内：
       - 目标 t == 0 时视作 t = 1（滑杆在 0 端也要强制变红，而不是恒等）；
       - 有效目标 >= 1 时新 hue 直接取参考色相；
       - 否则 new_hue = hue - (ref/360 - t)，并按整圈回绕；
       用 (new_hue, s, v) 转回 RGB；
    3) 否则原样保留 (r, g, b)；
    4) alpha 恒为 1。

存储布局：cube[b, g, r] = (R, G, B, A)，即 r 变化最快（与常见 color cube 数据排布一致）。

缓存：立方体只依赖（量化后的）色相，`ColorCubeCache` 仅在色相变化时重建；
逐帧重建 262144 个采样点在实时帧率下不可接受。
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import numpy as np

from .hsv import hsv_to_rgb, rgb_to_hsv

logger = logging.getLogger(__name__)

DEFAULT_CUBE_SIZE = 64
DEFAULT_REFERENCE_HUE_DEG = 0.0
DEFAULT_HUE_RANGE_DEG = 60.0


def build_color_cube(
    hue: float,
    *,
    size: int = DEFAULT_CUBE_SIZE,
    reference_hue_deg: float = DEFAULT_REFERENCE_HUE_DEG,
    hue_range_deg: float = DEFAULT_HUE_RANGE_DEG,
) -> np.ndarray:
    """构建色相替换立方体。

    Args:
        hue: 目标色相 t（整圈单位，[0, 1) 表示 0–360°）。
        size: 每轴采样数 N。
        reference_hue_deg: 被替换的参考色相（度）。
        hue_range_deg: 替换窗口总宽度（度）。

    Returns:
        N×N×N×4 的 float32 数组。
    """

    n = int(size)
    axis = np.arange(n, dtype=np.float64) / float(n)
    b, g, r = np.meshgrid(axis, axis, axis, indexing="ij")
    rgb = np.stack([r, g, b], axis=-1)

    hsv = rgb_to_hsv(rgb)
    h = hsv[..., 0]

    center = float(reference_hue_deg) / 360.0
    lo = (float(reference_hue_deg) - float(hue_range_deg) / 2.0) / 360.0
    hi = (float(reference_hue_deg) + float(hue_range_deg) / 2.0) / 360.0
    in_window = (h > lo) & (h < hi)

    t = float(hue)
    dest = 1.0 if t == 0.0 else t
    if dest >= 1.0:
        new_h = np.full_like(h, center)
    else:
        new_h = h - (center - dest)

    remapped = hsv_to_rgb(np.stack([new_h, hsv[..., 1], hsv[..., 2]], axis=-1))
    out_rgb = np.where(in_window[..., None], remapped, rgb)

    cube = np.empty((n, n, n, 4), dtype=np.float32)
    cube[..., :3] = out_rgb
    cube[..., 3] = 1.0
    return cube


class ColorCubeCache:
    """单条目的立方体缓存（key 为量化后的色相）。

    并发约定：
        - 检查 key / 构建 / 发布 在同一把锁内完成；读者拿到的是已完整构建的只读数组，
          不会看到构建到一半的表。
        - 被新色相取代时旧表即被丢弃（仍被读者持有的引用不受影响）。
    """

    def __init__(
        self,
        *,
        size: int = DEFAULT_CUBE_SIZE,
        reference_hue_deg: float = DEFAULT_REFERENCE_HUE_DEG,
        hue_range_deg: float = DEFAULT_HUE_RANGE_DEG,
        hue_quantum: float = 1.0 / 3600.0,
    ) -> None:
        if float(hue_quantum) <= 0:
            raise ValueError("hue_quantum must be > 0")
        self._size = int(size)
        self._reference_hue_deg = float(reference_hue_deg)
        self._hue_range_deg = float(hue_range_deg)
        self._steps = max(1, int(round(1.0 / float(hue_quantum))))

        self._lock = threading.Lock()
        self._key: Optional[int] = None
        self._cube: Optional[np.ndarray] = None
        self.build_count = 0

    @property
    def size(self) -> int:
        return self._size

    def quantize(self, hue: float) -> int:
        """把色相量化为整数 key。

        说明：
            key 0 只留给恰好为 0 的色相（强制红色分支）；非 0 色相即使极靠近 0 或 1，
            也只会落到 [1, steps-1]，不会被量化成“强制红色”。
        """

        h = float(hue) % 1.0
        if h >= 1.0 or h == 0.0:
            return 0
        k = int(round(h * self._steps))
        return int(min(max(k, 1), self._steps - 1))

    def key_to_hue(self, key: int) -> float:
        return float(key) / float(self._steps)

    def get(self, hue: float) -> np.ndarray:
        """返回 hue 对应的立方体；仅在量化 key 变化时重建。"""

        key = self.quantize(hue)
        with self._lock:
            if self._cube is not None and self._key == key:
                return self._cube

            t0 = time.perf_counter()
            cube = build_color_cube(
                self.key_to_hue(key),
                size=self._size,
                reference_hue_deg=self._reference_hue_deg,
                hue_range_deg=self._hue_range_deg,
            )
            cube.flags.writeable = False
            self._key = key
            self._cube = cube
            self.build_count += 1
            logger.debug(
                "color cube rebuilt: hue=%.4f size=%d took=%.1fms",
                self.key_to_hue(key),
                self._size,
                (time.perf_counter() - t0) * 1000.0,
            )
            return cube

    def invalidate(self) -> None:
        with self._lock:
            self._key = None
            self._cube = None
