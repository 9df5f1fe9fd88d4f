"""输出帧消费：写图片/视频/JSONL + 周期性状态输出。

职责：
- `FrameOutputSink`：把 OutputFrame 写成 PNG 序列、MP4 视频与 JSONL 记录（三者均可选）。
- `StatusPrinter`：按时间间隔打印处理帧率与丢帧计数。
- `run_output_loop`：同步模式下消费流水线产出的帧。

说明：
- 该模块属于 apps/entry 层（I/O 与人类可读输出），不应被 core 反向依赖。
- worker 模式下 sink 在 worker 线程内被调用；sink 自身不加锁，只允许单线程使用。
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import IO, Any, Optional

import cv2

from backdrop.models import OutputFrame

logger = logging.getLogger(__name__)


class FrameOutputSink:
    """输出帧写盘。

    JSONL 的 flush 策略：
        - jsonl_flush_every_records=N：每写 N 条 flush 一次（0 关闭）；
        - jsonl_flush_interval_s=S：距上次 flush 超过 S 秒时 flush（0 关闭）；
        - close() 时总会 flush 一次。
    """

    def __init__(
        self,
        *,
        out_dir: Optional[Path] = None,
        out_video: Optional[Path] = None,
        video_fps: float = 30.0,
        out_jsonl: Optional[Path] = None,
        jsonl_flush_every_records: int = 1,
        jsonl_flush_interval_s: float = 0.0,
    ) -> None:
        self._out_dir = Path(out_dir) if out_dir is not None else None
        self._out_video = Path(out_video) if out_video is not None else None
        self._video_fps = float(video_fps)
        self._video: Optional[cv2.VideoWriter] = None
        self._video_size: Optional[tuple[int, int]] = None

        self._jsonl: Optional[IO[str]] = None
        self._jsonl_every = int(jsonl_flush_every_records)
        self._jsonl_interval_s = float(jsonl_flush_interval_s)
        self._jsonl_pending = 0
        self._jsonl_last_flush_t = time.monotonic()

        self.frames_written = 0
        self.records_written = 0

        if self._out_dir is not None:
            self._out_dir.mkdir(parents=True, exist_ok=True)
        if out_jsonl is not None:
            p = Path(out_jsonl)
            p.parent.mkdir(parents=True, exist_ok=True)
            self._jsonl = p.open("w", encoding="utf-8")

    def _open_video(self, size: tuple[int, int]) -> cv2.VideoWriter:
        assert self._out_video is not None
        self._out_video.parent.mkdir(parents=True, exist_ok=True)
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        vw = cv2.VideoWriter(str(self._out_video), fourcc, self._video_fps, size)
        if not vw.isOpened():
            raise RuntimeError(f"无法打开视频输出: {self._out_video}")
        self._video_size = size
        logger.info("video output opened: %s %dx%d @ %.1ffps", self._out_video, size[0], size[1], self._video_fps)
        return vw

    def _write_record(self, rec: dict[str, Any]) -> None:
        assert self._jsonl is not None
        self._jsonl.write(json.dumps(rec, ensure_ascii=False) + "\n")
        self._jsonl_pending += 1
        self.records_written += 1

        due = self._jsonl_every > 0 and self._jsonl_pending >= self._jsonl_every
        if not due and self._jsonl_interval_s > 0:
            due = (time.monotonic() - self._jsonl_last_flush_t) >= self._jsonl_interval_s
        if due:
            self.flush()

    def flush(self) -> None:
        if self._jsonl is None:
            return
        self._jsonl.flush()
        self._jsonl_pending = 0
        self._jsonl_last_flush_t = time.monotonic()

    def __call__(self, frame: OutputFrame) -> None:
        img = frame.image
        size = (int(img.shape[1]), int(img.shape[0]))

        if self._out_dir is not None:
            p = self._out_dir / f"frame_{int(frame.tick_index):06d}.png"
            if not cv2.imwrite(str(p), img):
                raise RuntimeError(f"写入图片失败: {p}")

        if self._out_video is not None:
            if self._video is None:
                self._video = self._open_video(size)
            if size != self._video_size:
                logger.warning(
                    "tick %d: frame size %s differs from video size %s, resized",
                    frame.tick_index,
                    size,
                    self._video_size,
                )
                img = cv2.resize(img, self._video_size, interpolation=cv2.INTER_AREA)
            bgr = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR) if img.shape[2] == 4 else img
            self._video.write(bgr)

        if self._jsonl is not None:
            self._write_record(frame.to_record())

        self.frames_written += 1

    def close(self) -> None:
        if self._video is not None:
            self._video.release()
            self._video = None
        if self._jsonl is not None:
            self.flush()
            self._jsonl.close()
            self._jsonl = None

    def __enter__(self) -> "FrameOutputSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StatusPrinter:
    """周期性状态输出（proc_fps / dropped / failed / 最近一帧耗时）。"""

    def __init__(
        self,
        *,
        interval_s: float,
        get_stats: Callable[[], dict[str, Any]],
        print_fn: Callable[[str], None] = print,
    ) -> None:
        self._interval_s = float(interval_s)
        self._get_stats = get_stats
        self._print = print_fn
        self._last_t = time.monotonic()
        self._last_frames = 0

    def maybe_print(self, frames_done: int) -> bool:
        if self._interval_s <= 0:
            return False
        now = time.monotonic()
        if (now - self._last_t) < self._interval_s:
            return False

        dt_s = max(now - self._last_t, 1e-9)
        proc_fps = float(frames_done - self._last_frames) / dt_s
        st = self._get_stats()
        self._print(
            f"status: ticks={st.get('ticks_seen', 0)} frames={frames_done} "
            f"dropped={st.get('ticks_dropped', 0)} failed={st.get('ticks_failed', 0)} "
            f"proc_fps~{proc_fps:.2f} last~{float(st.get('last_process_ms', 0.0)):.1f}ms"
        )
        self._last_t = now
        self._last_frames = frames_done
        return True


def run_output_loop(
    *,
    frames: Iterable[OutputFrame],
    sink: Callable[[OutputFrame], None],
    status: Optional[StatusPrinter] = None,
) -> int:
    """消费输出帧：写盘 + 状态输出。

    Returns:
        已消费的帧数。
    """

    frames_done = 0
    for frame in frames:
        sink(frame)
        frames_done += 1
        if status is not None:
            status.maybe_print(frames_done)
    return frames_done
