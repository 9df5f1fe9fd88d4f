"""背景图加载与几何准备。

职责：
- `prepare_background_image`：把任意宽高比的图片居中裁剪到输出宽高比，再缩放到输出分辨率，
  并统一转成 BGRA uint8。该步骤只在加载时做一次，不进入逐帧路径。
- `BackgroundLoader`：在独立线程里读取/准备背景图，完成后一次性原子替换到 PipelineState；
  失败时只记日志，保留原背景（或保持无背景），不打断正在进行的逐帧处理。
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from backdrop.state import PipelineState

logger = logging.getLogger(__name__)

BackgroundSource = Union[np.ndarray, str, Path]


class BackgroundLoadError(RuntimeError):
    """背景图无法读取或格式不支持。"""


def _to_bgra(img: np.ndarray) -> np.ndarray:
    if img.dtype != np.uint8:
        raise BackgroundLoadError(f"background image must be uint8, got dtype={img.dtype}")
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA)
    if img.ndim == 3 and img.shape[2] == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
    if img.ndim == 3 and img.shape[2] == 4:
        return img
    raise BackgroundLoadError(f"unsupported background image shape={img.shape}")


def prepare_background_image(image: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """居中裁剪到目标宽高比并缩放到目标尺寸。

    Args:
        image: 灰度/BGR/BGRA 的 uint8 图像。
        size: 目标尺寸 (W, H)。

    Returns:
        H×W×4 的 BGRA uint8 新数组（不与输入共享内存）。
    """

    out_w, out_h = int(size[0]), int(size[1])
    if out_w <= 0 or out_h <= 0:
        raise ValueError(f"invalid target size: {size}")

    img = _to_bgra(np.asarray(image))
    ih, iw = int(img.shape[0]), int(img.shape[1])
    if iw <= 0 or ih <= 0:
        raise BackgroundLoadError("background image is empty")

    # 取能完整放下目标宽高比的最大裁剪窗口。
    scale = min(float(iw) / float(out_w), float(ih) / float(out_h))
    crop_w = max(1, min(iw, int(round(out_w * scale))))
    crop_h = max(1, min(ih, int(round(out_h * scale))))
    x0 = (iw - crop_w) // 2
    y0 = (ih - crop_h) // 2
    cropped = img[y0 : y0 + crop_h, x0 : x0 + crop_w]

    if (crop_w, crop_h) == (out_w, out_h):
        return np.ascontiguousarray(cropped).copy()

    interp = cv2.INTER_AREA if crop_w > out_w else cv2.INTER_CUBIC
    return cv2.resize(cropped, (out_w, out_h), interpolation=interp)


def read_background_image(path: Path) -> np.ndarray:
    """从磁盘读取图片（保留 alpha 通道，若有）。"""

    path = Path(path)
    img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if img is None:
        raise BackgroundLoadError(f"无法读取背景图: {path}")
    if img.dtype == np.uint16:
        img = (img // 257).astype(np.uint8)
    return img


def load_background(source: BackgroundSource, size: tuple[int, int]) -> np.ndarray:
    """读取（若为路径）并完成几何准备。"""

    if isinstance(source, (str, Path)):
        img = read_background_image(Path(source))
    else:
        img = np.asarray(source)
    return prepare_background_image(img, size)


class BackgroundLoader:
    """异步背景加载器（单线程执行器，按提交顺序完成）。"""

    def __init__(self, *, state: PipelineState, size: tuple[int, int]) -> None:
        self._state = state
        self._size = (int(size[0]), int(size[1]))
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="backdrop-bg")

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    def load_sync(self, source: BackgroundSource) -> bool:
        """同步加载；成功返回 True，失败记录 warning 并返回 False。"""

        try:
            prepared = load_background(source, self._size)
        except (BackgroundLoadError, ValueError, cv2.error) as exc:
            logger.warning("background load failed, keep previous background: %s", exc)
            return False

        self._state.set_background_image(prepared)
        label = str(source) if isinstance(source, (str, Path)) else f"array{tuple(np.shape(source))}"
        logger.info("background loaded: %s -> %dx%d", label, self._size[0], self._size[1])
        return True

    def load_async(self, source: BackgroundSource) -> "Future[bool]":
        return self._executor.submit(self.load_sync, source)

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BackgroundLoader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
