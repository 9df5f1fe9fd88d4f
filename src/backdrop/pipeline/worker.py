"""单 worker 逐帧处理（latest-tick-wins）。

职责：
- `LatestTickSlot`：容量为 1 的队列；生产者来得比 worker 快时，用新 tick 挤掉尚未处理的旧 tick，
  从而限制内存与延迟（不排队）。
- `FrameWorker`：一个专用线程，取最新 tick -> `BackdropPipeline.process_tick` -> 交给 sink。
  tick N 完整处理完才会开始 N+1，不存在重叠或乱序处理。

说明：
- 取 tick 用带超时的 get，停止信号最多延迟一个超时周期生效，不会无限阻塞。
- sink 抛出的异常只记日志，不影响后续 tick。
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Optional

from backdrop.models import FrameTick, OutputFrame

from .core import BackdropPipeline

logger = logging.getLogger(__name__)

OutputSink = Callable[[OutputFrame], None]


class LatestTickSlot:
    """容量为 1 的 tick 槽位：put 覆盖旧值，get 取走当前值。"""

    def __init__(self) -> None:
        self._q: "queue.Queue[FrameTick]" = queue.Queue(maxsize=1)
        # 多生产者时保证“挤掉旧值 + 放入新值”是一个整体。
        self._put_lock = threading.Lock()
        self.dropped_stale = 0

    def put(self, tick: FrameTick) -> int:
        """放入 tick，返回被挤掉的旧 tick 数（0 或 1）。"""

        replaced = 0
        with self._put_lock:
            while True:
                try:
                    self._q.put_nowait(tick)
                    return replaced
                except queue.Full:
                    pass
                try:
                    stale = self._q.get_nowait()
                except queue.Empty:
                    continue
                replaced += 1
                self.dropped_stale += 1
                logger.debug("stale tick %d replaced by tick %d", stale.tick_index, tick.tick_index)

    def get(self, timeout_s: float = 0.1) -> Optional[FrameTick]:
        try:
            return self._q.get(timeout=float(timeout_s))
        except queue.Empty:
            return None

    def qsize(self) -> int:
        return self._q.qsize()


class FrameWorker:
    """专用处理线程。"""

    def __init__(
        self,
        *,
        pipeline: BackdropPipeline,
        sink: OutputSink,
        poll_timeout_s: float = 0.1,
    ) -> None:
        self._pipeline = pipeline
        self._sink = sink
        self._poll_timeout_s = float(poll_timeout_s)
        self._slot = LatestTickSlot()
        self._stop = threading.Event()
        # submitted/settled 用于 wait_idle：被处理或被取代的 tick 都算 settled。
        self._cond = threading.Condition()
        self._submitted = 0
        self._settled = 0
        self._thread: Optional[threading.Thread] = None
        self.outputs_delivered = 0

    @property
    def slot(self) -> LatestTickSlot:
        return self._slot

    def submit(self, tick: FrameTick) -> None:
        """提交一个 tick；若上一个尚未被取走，则被本 tick 取代。"""

        with self._cond:
            self._submitted += 1
            replaced = self._slot.put(tick)
            if replaced:
                self._settled += replaced
                self._cond.notify_all()

    def start(self) -> "FrameWorker":
        if self._thread is not None:
            raise RuntimeError("FrameWorker already started")
        self._thread = threading.Thread(target=self._run, name="backdrop-frame-worker", daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.is_set():
            tick = self._slot.get(timeout_s=self._poll_timeout_s)
            if tick is None:
                continue

            try:
                out = self._pipeline.process_tick(tick)
                if out is not None:
                    try:
                        self._sink(out)
                        self.outputs_delivered += 1
                    except Exception:
                        logger.exception("output sink failed for tick %d", out.tick_index)
            finally:
                with self._cond:
                    self._settled += 1
                    self._cond.notify_all()

    def wait_idle(self, timeout_s: float = 5.0) -> bool:
        """等待当前已提交的 tick 全部处理完（或被取代）。"""

        with self._cond:
            return self._cond.wait_for(lambda: self._settled >= self._submitted, timeout=float(timeout_s))

    def stop(self, timeout_s: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=float(timeout_s))
            if self._thread.is_alive():
                logger.warning("frame worker did not stop within %.1fs", timeout_s)
            self._thread = None

    def __enter__(self) -> "FrameWorker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
