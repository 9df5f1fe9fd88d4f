"""流水线共享控制状态（PipelineState）。

职责：
- 收拢所有“跨 tick 持久”的控制字段：depth_cutoff / hue / background_visible /
  background_saturation / background_image。
- 提供显式 setter（带校验），供手势/用户控制、异步背景加载等外部通路调用。
- 每个 tick 开始时由 worker 调用 `snapshot()` 取一份一致快照。

并发约定：
- 所有字段读写都持有同一把 `threading.Lock`；快照在锁内一次性拷贝，
  因此 worker 不会观察到“改了一半”的字段组合。
- 背景图在加载线程里完整准备好（只读 ndarray）后，才通过一次引用赋值替换。
- 流水线自身只写 depth_cutoff（人脸观测时更新，跨 tick 保持）。
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

DEFAULT_DEPTH_CUTOFF_M = 1.0


@dataclass(frozen=True)
class StateSnapshot:
    """某一时刻 PipelineState 的不可变拷贝。"""

    depth_cutoff: float
    hue: float
    background_visible: bool
    background_saturation: float
    background_image: Optional[np.ndarray]


def _require_finite(value: float, *, name: str) -> float:
    v = float(value)
    if not math.isfinite(v):
        raise ValueError(f"{name} must be finite (got {value!r})")
    return v


class PipelineState:
    """进程生命周期内的共享控制状态。"""

    def __init__(
        self,
        *,
        depth_cutoff: float = DEFAULT_DEPTH_CUTOFF_M,
        hue: float = 0.0,
        background_visible: bool = False,
        background_saturation: float = 1.0,
        background_image: Optional[np.ndarray] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._depth_cutoff = DEFAULT_DEPTH_CUTOFF_M
        self._hue = 0.0
        self._background_visible = bool(background_visible)
        self._background_saturation = 1.0
        self._background_image: Optional[np.ndarray] = None

        self.set_depth_cutoff(depth_cutoff)
        self.set_hue(hue)
        self.set_background_saturation(background_saturation)
        if background_image is not None:
            self.set_background_image(background_image)

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(
                depth_cutoff=self._depth_cutoff,
                hue=self._hue,
                background_visible=self._background_visible,
                background_saturation=self._background_saturation,
                background_image=self._background_image,
            )

    # ------------------------------------------------------------------
    # 外部控制调用
    # ------------------------------------------------------------------

    def set_hue(self, value: float) -> float:
        """设置目标色相（单位：整圈）。

        说明：
            色相是环形量，这里按 1.0 取模回绕到 [0, 1)；因此 1.0 与 0.0 等价，
            都会走“强制红色”分支（见 color.cube）。

        Returns:
            实际写入的值。
        """

        v = _require_finite(value, name="hue") % 1.0
        # 极小的负数取模后会得到 1.0。
        if v >= 1.0:
            v = 0.0
        with self._lock:
            self._hue = v
        return v

    def toggle_background_visible(self) -> bool:
        """切换背景替换开关，返回切换后的值。"""

        with self._lock:
            self._background_visible = not self._background_visible
            return self._background_visible

    def set_background_visible(self, visible: bool) -> None:
        with self._lock:
            self._background_visible = bool(visible)

    def set_background_saturation(self, value: float) -> float:
        """设置背景饱和度；超出 [0, 1] 的值会被夹紧。"""

        v = _require_finite(value, name="background_saturation")
        v = float(min(1.0, max(0.0, v)))
        with self._lock:
            self._background_saturation = v
        return v

    def set_background_image(self, image: np.ndarray) -> None:
        """原子替换背景图。

        要求调用方传入已完成几何准备（裁剪/缩放）的 BGRA 图像。
        状态里保存的是只读副本（调用方自己的数组不受影响），worker 读取期间不会被原地修改。
        """

        if image.ndim != 3 or image.shape[2] != 4:
            raise ValueError(f"background image must be HxWx4, got shape={image.shape}")
        image = np.array(image, copy=True)
        image.flags.writeable = False
        with self._lock:
            self._background_image = image

    def clear_background(self) -> None:
        with self._lock:
            self._background_image = None

    # ------------------------------------------------------------------
    # 流水线回写
    # ------------------------------------------------------------------

    def set_depth_cutoff(self, value: float) -> None:
        v = _require_finite(value, name="depth_cutoff")
        if v <= 0:
            raise ValueError(f"depth_cutoff must be > 0 (got {value!r})")
        with self._lock:
            self._depth_cutoff = v

    @property
    def depth_cutoff(self) -> float:
        with self._lock:
            return self._depth_cutoff

    @property
    def hue(self) -> float:
        with self._lock:
            return self._hue

    @property
    def background_visible(self) -> bool:
        with self._lock:
            return self._background_visible

    @property
    def background_saturation(self) -> float:
        with self._lock:
            return self._background_saturation

    @property
    def background_image(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._background_image
