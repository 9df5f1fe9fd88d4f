"""流水线核心：深度阈值 -> mask -> matte -> 背景合成 -> 色相替换。

本模块刻意保持“无框架依赖”（不依赖线程池/消息队列/显示层），只依赖：
- ticks：迭代器，产出 FrameTick（同步层交付的 color/depth/face）
- state：PipelineState（外部控制通路并发修改）
- config：BackdropConfig

逐 tick 规则：
- color 或 depth 被同步层标记为 dropped：整组跳过，不产出输出。
- tick 开始时取一次 StateSnapshot，本 tick 内只读这份快照。
- background_visible=True 但缺少深度帧：退化为原始彩色帧（仍做色相替换），不报错。
- 人脸观测得到的新阈值回写 PipelineState，供后续 tick 使用（sticky）。
- 单个 tick 内的意外异常只记日志并跳过该 tick，不向调用方抛出；
  唯一会抛出的是开流前的 `UnsupportedDepthFormatError`。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

import cv2
import numpy as np

from backdrop.color import ColorCubeCache, apply_color_cube
from backdrop.config import BackdropConfig
from backdrop.depth import DepthCutoffEstimator, build_segmentation_mask
from backdrop.matting import AlphaMatteGenerator, BackgroundCompositor
from backdrop.models import FrameTick, OutputFrame
from backdrop.state import PipelineState, StateSnapshot

logger = logging.getLogger(__name__)


class UnsupportedDepthFormatError(RuntimeError):
    """深度源不是浮点深度格式（配置错误，必须在开流前报出）。"""


def check_depth_format(dtype: Any) -> np.dtype:
    """校验深度源的数据格式；仅接受浮点深度（单位：米）。

    Raises:
        UnsupportedDepthFormatError: 非浮点格式（例如 uint16 视差/毫米图）。
    """

    try:
        dt = np.dtype(dtype)
    except TypeError as exc:
        raise UnsupportedDepthFormatError(f"unknown depth format: {dtype!r}") from exc
    if dt.kind != "f":
        raise UnsupportedDepthFormatError(
            f"depth source must provide floating-point depth in meters, got dtype={dt}"
        )
    return dt


def _ensure_bgra(color: np.ndarray) -> np.ndarray:
    if color.ndim == 3 and color.shape[2] == 4:
        return color
    if color.ndim == 3 and color.shape[2] == 3:
        return cv2.cvtColor(color, cv2.COLOR_BGR2BGRA)
    if color.ndim == 2:
        return cv2.cvtColor(color, cv2.COLOR_GRAY2BGRA)
    raise ValueError(f"unsupported color frame shape={color.shape}")


@dataclass
class PipelineStats:
    ticks_seen: int = 0
    ticks_processed: int = 0
    ticks_dropped: int = 0
    ticks_failed: int = 0
    ticks_matted: int = 0
    last_process_ms: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticks_seen": int(self.ticks_seen),
            "ticks_processed": int(self.ticks_processed),
            "ticks_dropped": int(self.ticks_dropped),
            "ticks_failed": int(self.ticks_failed),
            "ticks_matted": int(self.ticks_matted),
            "last_process_ms": float(self.last_process_ms),
        }


class BackdropPipeline:
    """按 tick 串联各组件，并持有共享控制状态与颜色立方体缓存。"""

    def __init__(
        self,
        *,
        config: Optional[BackdropConfig] = None,
        state: Optional[PipelineState] = None,
        cube_cache: Optional[ColorCubeCache] = None,
    ) -> None:
        self.config = config if config is not None else BackdropConfig()
        mat = self.config.matting
        ctl = self.config.controls

        if state is None:
            state = PipelineState(
                depth_cutoff=float(mat.default_depth_cutoff_m),
                hue=float(ctl.hue),
                background_visible=bool(ctl.background_visible),
                background_saturation=float(ctl.background_saturation),
            )
        self.state = state

        cube_cfg = self.config.cube
        self.cube_cache = cube_cache if cube_cache is not None else ColorCubeCache(
            size=int(cube_cfg.size),
            reference_hue_deg=float(cube_cfg.reference_hue_deg),
            hue_range_deg=float(cube_cfg.hue_range_deg),
            hue_quantum=float(cube_cfg.hue_quantum),
        )

        self.cutoff_estimator = DepthCutoffEstimator(margin_m=float(mat.depth_margin_m))
        self.matte_generator = AlphaMatteGenerator(blur_radius=float(mat.blur_radius), gamma=float(mat.gamma))
        self.compositor = BackgroundCompositor()
        self.stats = PipelineStats()

    def check_depth_format(self, dtype: Any) -> np.dtype:
        """开流前调用：深度源格式不支持时抛出 UnsupportedDepthFormatError。"""

        return check_depth_format(dtype)

    # ------------------------------------------------------------------
    # 逐 tick 处理
    # ------------------------------------------------------------------

    def _matte_for_tick(self, tick: FrameTick, color: np.ndarray, snap: StateSnapshot) -> tuple[np.ndarray, float]:
        depth = np.asarray(tick.depth, dtype=np.float32)
        if depth.ndim == 3:
            depth = depth[..., 0]

        color_size = (int(color.shape[1]), int(color.shape[0]))
        cutoff = self.cutoff_estimator.estimate(
            depth,
            tick.face,
            color_size=color_size,
            current_cutoff=float(snap.depth_cutoff),
        )
        if cutoff != snap.depth_cutoff:
            self.state.set_depth_cutoff(cutoff)

        mask = build_segmentation_mask(depth, cutoff)
        matte = self.matte_generator.generate(mask, target_size=color_size)
        return matte, cutoff

    def _process(self, tick: FrameTick) -> OutputFrame:
        snap = self.state.snapshot()
        color = _ensure_bgra(np.asarray(tick.color))

        cutoff = float(snap.depth_cutoff)
        matted = False
        composed = color
        if snap.background_visible:
            if tick.depth is None:
                logger.debug("tick %d: background visible but no depth frame, passthrough", tick.tick_index)
            else:
                matte, cutoff = self._matte_for_tick(tick, color, snap)
                composed = self.compositor.composite(color, matte, snap)
                matted = True

        cube = self.cube_cache.get(snap.hue)
        out = apply_color_cube(composed, cube)

        return OutputFrame(
            image=out,
            tick_index=int(tick.tick_index),
            timestamp_s=tick.timestamp_s,
            depth_cutoff=float(cutoff),
            matted=bool(matted),
            hue=float(snap.hue),
        )

    def process_tick(self, tick: FrameTick) -> Optional[OutputFrame]:
        """处理一组同步帧。

        Returns:
            OutputFrame；若本 tick 被丢弃或处理失败则返回 None。
        """

        self.stats.ticks_seen += 1
        if tick.dropped:
            self.stats.ticks_dropped += 1
            logger.debug(
                "tick %d dropped by sync layer (color_dropped=%s depth_dropped=%s)",
                tick.tick_index,
                tick.color_dropped,
                tick.depth_dropped,
            )
            return None

        t0 = time.perf_counter()
        try:
            out = self._process(tick)
        except Exception:
            self.stats.ticks_failed += 1
            logger.exception("tick %d processing failed; skipped", tick.tick_index)
            return None

        self.stats.last_process_ms = (time.perf_counter() - t0) * 1000.0
        self.stats.ticks_processed += 1
        if out.matted:
            self.stats.ticks_matted += 1
        return out


def run_backdrop_pipeline(
    *,
    ticks: Iterable[FrameTick],
    pipeline: BackdropPipeline,
) -> Iterator[OutputFrame]:
    """对输入 ticks 逐个运行流水线，只产出成功处理的输出帧。

    Args:
        ticks: FrameTick 迭代器（在线同步层或离线 captures）。
        pipeline: 已构建的 BackdropPipeline。

    Yields:
        OutputFrame。
    """

    for tick in ticks:
        out = pipeline.process_tick(tick)
        if out is None:
            continue
        yield out
