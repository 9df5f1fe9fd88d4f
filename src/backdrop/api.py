"""backdrop 对外稳定入口。

外部项目建议只从这里（或包顶层）导入，避免依赖内部目录结构。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from backdrop.background import BackgroundLoader
from backdrop.config import BackdropConfig
from backdrop.models import OutputFrame
from backdrop.pipeline import (
    BackdropPipeline,
    iter_capture_ticks,
    detect_capture_depth_format,
    run_backdrop_pipeline,
)
from backdrop.state import PipelineState

logger = logging.getLogger(__name__)


def build_pipeline(
    config: Optional[BackdropConfig] = None,
    *,
    state: Optional[PipelineState] = None,
) -> BackdropPipeline:
    """按配置构建流水线（含共享状态与颜色立方体缓存）。"""

    return BackdropPipeline(config=config, state=state)


def iter_output_frames_from_captures(
    *,
    captures_dir: Path,
    config: Optional[BackdropConfig] = None,
    pipeline: Optional[BackdropPipeline] = None,
    max_ticks: int = 0,
) -> Iterator[OutputFrame]:
    """离线：从 captures 目录逐帧合成输出。

    说明：
        - 开流前先探测深度格式；非浮点深度直接抛出 UnsupportedDepthFormatError。
        - 配置里的初始背景图同步加载；之后 captures 中的 load_background 控制记录按顺序回放。

    Raises:
        UnsupportedDepthFormatError: 深度文件不是浮点深度。
        CaptureSourceError: captures 目录不可用。
    """

    captures_dir = Path(captures_dir).resolve()
    if pipeline is None:
        pipeline = build_pipeline(config)
    cfg = pipeline.config

    dtype = detect_capture_depth_format(captures_dir)
    if dtype is not None:
        pipeline.check_depth_format(dtype)
    else:
        logger.info("captures contain no depth frames; matting will pass through")

    with BackgroundLoader(state=pipeline.state, size=cfg.output_size) as loader:
        if cfg.controls.background_image is not None:
            loader.load_sync(cfg.controls.background_image)

        ticks = iter_capture_ticks(
            captures_dir=captures_dir,
            state=pipeline.state,
            loader=loader,
            max_ticks=int(max_ticks),
        )
        yield from run_backdrop_pipeline(ticks=ticks, pipeline=pipeline)
