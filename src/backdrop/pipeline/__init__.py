"""在线/离线共用的背景替换流水线。

该包提供可复用的流水线“积木”：
- `sources_offline`：从离线 captures 目录产出 FrameTick，并按顺序回放录制的控制操作
- `core`：对每个 tick 执行 深度阈值 -> matte -> 背景合成 -> 色相替换
- `worker`：单 worker 线程 + 容量为 1 的槽位（latest-tick-wins）

设计目标：让 `backdrop.apps.*` 只承担命令行参数解析与 I/O（保持入口脚本尽量薄）。
"""

from .core import (
    BackdropPipeline,
    PipelineStats,
    UnsupportedDepthFormatError,
    check_depth_format,
    run_backdrop_pipeline,
)
from .sources_offline import (
    CaptureSourceError,
    apply_control_record,
    iter_capture_ticks,
    detect_capture_depth_format,
)
from .worker import FrameWorker, LatestTickSlot

__all__ = [
    "BackdropPipeline",
    "CaptureSourceError",
    "FrameWorker",
    "LatestTickSlot",
    "PipelineStats",
    "UnsupportedDepthFormatError",
    "apply_control_record",
    "check_depth_format",
    "iter_capture_ticks",
    "detect_capture_depth_format",
    "run_backdrop_pipeline",
]
