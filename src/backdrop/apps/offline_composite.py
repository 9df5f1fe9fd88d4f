"""离线：从 captures/metadata.jsonl 读取 color/depth/face，逐帧抠像换背景换色并输出。"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import time
from pathlib import Path
from typing import Optional

from backdrop.api import build_pipeline, iter_output_frames_from_captures
from backdrop.background import BackgroundLoader
from backdrop.config import BackdropConfig, load_backdrop_config
from backdrop.logging_utils import configure_logging
from backdrop.pipeline import (
    BackdropPipeline,
    CaptureSourceError,
    FrameWorker,
    UnsupportedDepthFormatError,
    iter_capture_ticks,
    detect_capture_depth_format,
)

from .output_loop import FrameOutputSink, StatusPrinter, run_output_loop

logger = logging.getLogger("backdrop.apps.offline_composite")


def build_arg_parser() -> argparse.ArgumentParser:
    # 说明：Windows 终端编码差异较大，这里尽量使用 ASCII，避免 --help 乱码。
    p = argparse.ArgumentParser(
        description="Offline: depth matting + background replacement + hue remap from captures/metadata.jsonl"
    )
    p.add_argument(
        "--captures-dir",
        required=True,
        help="captures directory (contains metadata.jsonl, color images and depth .npy files)",
    )
    p.add_argument(
        "--config",
        default="",
        help="Optional config file (.json/.yaml/.yml). CLI flags below override its control values.",
    )
    p.add_argument("--out-dir", default="", help="Write composited frames as PNG into this directory")
    p.add_argument("--out-video", default="", help="Write composited frames into this MP4 file")
    p.add_argument("--video-fps", type=float, default=30.0, help="Frame rate of --out-video")
    p.add_argument("--out-jsonl", default="", help="Write one JSON record per output frame")
    p.add_argument(
        "--out-jsonl-flush-every-records",
        type=int,
        default=1,
        help="Flush JSONL every N records (0 disables count-based flush)",
    )
    p.add_argument(
        "--out-jsonl-flush-interval-s",
        type=float,
        default=0.0,
        help="Flush JSONL when this many seconds passed since last flush (0 disables)",
    )
    p.add_argument("--background", default="", help="Initial background image path")
    p.add_argument("--hue", type=float, default=None, help="Initial target hue in turns [0,1)")
    p.add_argument(
        "--show-background",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Initial background replacement switch",
    )
    p.add_argument("--saturation", type=float, default=None, help="Initial background saturation [0,1]")
    p.add_argument("--max-ticks", type=int, default=0, help="Process at most N ticks (0 = no limit)")
    p.add_argument(
        "--use-worker",
        action="store_true",
        help="Process through the single frame worker (latest tick wins, stale ticks are dropped)",
    )
    p.add_argument(
        "--tick-fps",
        type=float,
        default=0.0,
        help="With --use-worker: pace tick submission at this rate (0 = as fast as possible)",
    )
    p.add_argument("--log-level", default="", help="Console log level (DEBUG/INFO/WARNING/ERROR)")
    p.add_argument("--log-file", default="", help="Also write DEBUG logs into this file")
    p.add_argument(
        "--status-interval-s",
        type=float,
        default=None,
        help="Print a status line every N seconds (0 disables)",
    )
    return p


def _resolve_config(args: argparse.Namespace) -> BackdropConfig:
    cfg = BackdropConfig()
    if str(args.config or "").strip():
        cfg = load_backdrop_config(Path(str(args.config)).resolve())

    ctl = cfg.controls
    if args.hue is not None:
        ctl = dataclasses.replace(ctl, hue=float(args.hue))
    if args.show_background is not None:
        ctl = dataclasses.replace(ctl, background_visible=bool(args.show_background))
    if args.saturation is not None:
        ctl = dataclasses.replace(ctl, background_saturation=float(args.saturation))
    if str(args.background or "").strip():
        ctl = dataclasses.replace(ctl, background_image=Path(str(args.background)).resolve())

    overrides: dict = {"controls": ctl}
    if str(args.log_level or "").strip():
        overrides["log_level"] = str(args.log_level).strip().upper()
    if str(args.log_file or "").strip():
        overrides["log_file"] = Path(str(args.log_file)).resolve()
    if args.status_interval_s is not None:
        overrides["status_interval_s"] = float(args.status_interval_s)
    return dataclasses.replace(cfg, **overrides)


def _run_with_worker(
    *,
    pipeline: BackdropPipeline,
    captures_dir: Path,
    sink: FrameOutputSink,
    max_ticks: int,
    tick_fps: float,
) -> int:
    """worker 模式：读取线程只管提交，worker 只处理最新 tick。"""

    dtype = detect_capture_depth_format(captures_dir)
    if dtype is not None:
        pipeline.check_depth_format(dtype)

    period_s = (1.0 / float(tick_fps)) if float(tick_fps) > 0 else 0.0
    cfg = pipeline.config
    with BackgroundLoader(state=pipeline.state, size=cfg.output_size) as loader:
        if cfg.controls.background_image is not None:
            loader.load_sync(cfg.controls.background_image)

        with FrameWorker(pipeline=pipeline, sink=sink) as worker:
            next_t = time.monotonic()
            for tick in iter_capture_ticks(
                captures_dir=captures_dir,
                state=pipeline.state,
                loader=loader,
                max_ticks=int(max_ticks),
            ):
                if period_s > 0:
                    delay = next_t - time.monotonic()
                    if delay > 0:
                        time.sleep(delay)
                    next_t += period_s
                worker.submit(tick)

            if not worker.wait_idle(timeout_s=30.0):
                logger.warning("frame worker still busy at shutdown")
            logger.info("stale ticks replaced before processing: %d", worker.slot.dropped_stale)
            return int(worker.outputs_delivered)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        cfg = _resolve_config(args)
    except (RuntimeError, ValueError, OSError) as exc:
        print(f"config error: {exc}")
        return 2

    configure_logging(cfg)

    captures_dir = Path(args.captures_dir).resolve()
    out_dir = Path(args.out_dir).resolve() if str(args.out_dir).strip() else None
    out_video = Path(args.out_video).resolve() if str(args.out_video).strip() else None
    out_jsonl = Path(args.out_jsonl).resolve() if str(args.out_jsonl).strip() else None

    pipeline = build_pipeline(cfg)

    try:
        with FrameOutputSink(
            out_dir=out_dir,
            out_video=out_video,
            video_fps=float(args.video_fps),
            out_jsonl=out_jsonl,
            jsonl_flush_every_records=int(args.out_jsonl_flush_every_records),
            jsonl_flush_interval_s=float(args.out_jsonl_flush_interval_s),
        ) as sink:
            if args.use_worker:
                frames_done = _run_with_worker(
                    pipeline=pipeline,
                    captures_dir=captures_dir,
                    sink=sink,
                    max_ticks=int(args.max_ticks),
                    tick_fps=float(args.tick_fps),
                )
            else:
                frames_done = run_output_loop(
                    frames=iter_output_frames_from_captures(
                        captures_dir=captures_dir,
                        pipeline=pipeline,
                        max_ticks=int(args.max_ticks),
                    ),
                    sink=sink,
                    status=StatusPrinter(
                        interval_s=float(cfg.status_interval_s),
                        get_stats=pipeline.stats.as_dict,
                    ),
                )
    except UnsupportedDepthFormatError as exc:
        logger.error("unsupported depth format: %s", exc)
        return 2
    except CaptureSourceError as exc:
        logger.error("captures not usable: %s", exc)
        return 2

    st = pipeline.stats
    print(
        f"Done. ticks={st.ticks_seen} frames={frames_done} dropped={st.ticks_dropped} "
        f"failed={st.ticks_failed} cube_builds={pipeline.cube_cache.build_count}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
