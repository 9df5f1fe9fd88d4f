"""背景替换合成。

规则：
- background_visible=False：直接返回彩色帧（不读 matte/背景）。
- background_visible=True：
  - 无背景图：背景视为“空”（四通道全 0）；
  - 有背景图：先做饱和度调整（1.0 原色，0.0 灰度，中间线性插值），再按 matte 混合：
    output = lerp(background, color, alpha)，alpha=1 为前景（实时画面），alpha=0 为背景。

说明：
- 饱和度调整是 O(W·H)，这里按 (背景图对象, saturation, 尺寸) 缓存，仅在变化时重算。
- 该类只在 worker 线程内使用，缓存本身不加锁。
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from backdrop.background import prepare_background_image
from backdrop.state import StateSnapshot

# Rec.709 亮度系数，按 BGR 通道顺序排列。
_LUMA_BGR = np.array([0.0721, 0.7154, 0.2125], dtype=np.float32)


def adjust_saturation(image_bgra: np.ndarray, saturation: float) -> np.ndarray:
    """饱和度调整：lerp(灰度, 原色, saturation)，alpha 通道不变。

    Returns:
        float32 的 H×W×4 图像（取值 0..255）。
    """

    img = np.asarray(image_bgra, dtype=np.float32)
    s = np.float32(min(1.0, max(0.0, float(saturation))))

    out = img.copy()
    if s >= 1.0:
        return out

    luma = img[..., :3] @ _LUMA_BGR
    out[..., :3] = luma[..., None] + s * (img[..., :3] - luma[..., None])
    return out


def blend_with_matte(foreground: np.ndarray, background: np.ndarray, matte: np.ndarray) -> np.ndarray:
    """按 matte 混合四个通道，返回 uint8。"""

    fg = np.asarray(foreground, dtype=np.float32)
    bg = np.asarray(background, dtype=np.float32)
    a = np.asarray(matte, dtype=np.float32)[..., None]
    out = bg + a * (fg - bg)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


class BackgroundCompositor:
    """把实时彩色帧、可选背景图与 alpha matte 合成为一帧。"""

    def __init__(self) -> None:
        self._cache_source: Optional[np.ndarray] = None
        self._cache_key: Optional[tuple[float, int, int]] = None
        self._cache_value: Optional[np.ndarray] = None
        self.saturation_builds = 0

    def adjusted_background(
        self,
        image: Optional[np.ndarray],
        *,
        saturation: float,
        size: tuple[int, int],
    ) -> np.ndarray:
        """返回饱和度调整后的背景（float32 BGRA）；无背景图时返回全 0。"""

        w, h = int(size[0]), int(size[1])
        if image is None:
            return np.zeros((h, w, 4), dtype=np.float32)

        key = (float(saturation), w, h)
        if self._cache_value is not None and self._cache_source is image and self._cache_key == key:
            return self._cache_value

        bg = image
        if (int(bg.shape[1]), int(bg.shape[0])) != (w, h):
            # 背景按旧分辨率准备过（例如输出分辨率中途变化），重新裁剪缩放一次。
            bg = prepare_background_image(bg, (w, h))

        value = adjust_saturation(bg, saturation)
        self._cache_source = image
        self._cache_key = key
        self._cache_value = value
        self.saturation_builds += 1
        return value

    def composite(self, color: np.ndarray, matte: Optional[np.ndarray], snapshot: StateSnapshot) -> np.ndarray:
        if not snapshot.background_visible or matte is None:
            return color

        h, w = int(color.shape[0]), int(color.shape[1])
        bg = self.adjusted_background(
            snapshot.background_image,
            saturation=float(snapshot.background_saturation),
            size=(w, h),
        )
        return blend_with_matte(color, bg, matte)
