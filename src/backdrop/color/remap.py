"""颜色立方体查表（三线性插值）。

说明：
- 立方体第 i 个格点对应颜色值 i/N（见 color.cube），因此像素值 v∈[0,1] 的格点坐标为 v*N。
- v > (N-1)/N 落在最后一个格点之外，这里沿最后一个格子线性外推；
  这样恒等格点对任意输入都精确还原原值（255 不会被压暗成 251）。
- 输入为 8-bit 图像，每个通道只有 256 个取值，格点下标与插值权重预先按取值查表。
- alpha 通道原样透传。
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np


@lru_cache(maxsize=8)
def _level_tables(n: int) -> tuple[np.ndarray, np.ndarray]:
    """返回 256 个 8-bit 取值对应的 (下格点下标, 插值权重)。"""

    coord = np.arange(256, dtype=np.float64) / 255.0 * float(n)
    i0 = np.clip(np.floor(coord), 0, n - 2).astype(np.intp)
    frac = (coord - i0).astype(np.float32)
    i0.flags.writeable = False
    frac.flags.writeable = False
    return i0, frac


def apply_color_cube(frame: np.ndarray, cube: np.ndarray) -> np.ndarray:
    """对 BGR/BGRA uint8 帧应用颜色立方体。

    Args:
        frame: H×W×3 或 H×W×4 的 uint8 图像（OpenCV 通道顺序）。
        cube: N×N×N×4 立方体，cube[b, g, r] = (R, G, B, A)。

    Returns:
        与输入同尺寸同通道数的新 uint8 图像。
    """

    n = int(cube.shape[0])
    i0, frac = _level_tables(n)
    lut = np.asarray(cube[..., :3], dtype=np.float32)

    b_val = frame[..., 0]
    g_val = frame[..., 1]
    r_val = frame[..., 2]

    bi, gi, ri = i0[b_val], i0[g_val], i0[r_val]
    fb = frac[b_val][..., None]
    fg = frac[g_val][..., None]
    fr = frac[r_val][..., None]

    # 先沿 r 插值，再沿 g，最后沿 b。
    c00 = lut[bi, gi, ri] + fr * (lut[bi, gi, ri + 1] - lut[bi, gi, ri])
    c01 = lut[bi, gi + 1, ri] + fr * (lut[bi, gi + 1, ri + 1] - lut[bi, gi + 1, ri])
    c10 = lut[bi + 1, gi, ri] + fr * (lut[bi + 1, gi, ri + 1] - lut[bi + 1, gi, ri])
    c11 = lut[bi + 1, gi + 1, ri] + fr * (lut[bi + 1, gi + 1, ri + 1] - lut[bi + 1, gi + 1, ri])

    c0 = c00 + fg * (c01 - c00)
    c1 = c10 + fg * (c11 - c10)
    rgb = c0 + fb * (c1 - c0)

    rgb8 = np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.uint8)

    out = np.empty_like(frame)
    out[..., 0] = rgb8[..., 2]
    out[..., 1] = rgb8[..., 1]
    out[..., 2] = rgb8[..., 0]
    if frame.shape[-1] > 3:
        out[..., 3:] = frame[..., 3:]
    return out
