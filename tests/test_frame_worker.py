"""单 worker + latest-tick-wins 槽位的单测。"""

from __future__ import annotations

import threading

import numpy as np

from backdrop.models import FrameTick, OutputFrame
from backdrop.pipeline import FrameWorker, LatestTickSlot


def _tick(i: int) -> FrameTick:
    return FrameTick(color=np.zeros((2, 2, 4), dtype=np.uint8), tick_index=i)


class _GatedPipeline:
    """第一个 tick 阻塞在 gate 上，用来制造“worker 正忙”的窗口。"""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.gate = threading.Event()
        self.seen: list[int] = []

    def process_tick(self, tick: FrameTick) -> OutputFrame:
        self.seen.append(tick.tick_index)
        if len(self.seen) == 1:
            self.started.set()
            self.gate.wait(timeout=5.0)
        return OutputFrame(
            image=tick.color,
            tick_index=tick.tick_index,
            timestamp_s=None,
            depth_cutoff=1.0,
            matted=False,
            hue=0.0,
        )


def test_slot_keeps_only_latest_tick() -> None:
    slot = LatestTickSlot()

    assert slot.put(_tick(0)) == 0
    assert slot.put(_tick(1)) == 1
    assert slot.put(_tick(2)) == 1

    got = slot.get(timeout_s=0.1)
    assert got is not None
    assert got.tick_index == 2
    assert slot.dropped_stale == 2
    assert slot.get(timeout_s=0.01) is None


def test_worker_processes_latest_tick_after_busy_period() -> None:
    pipe = _GatedPipeline()
    delivered: list[int] = []

    with FrameWorker(pipeline=pipe, sink=lambda out: delivered.append(out.tick_index)) as worker:
        worker.submit(_tick(0))
        assert pipe.started.wait(timeout=5.0)

        worker.submit(_tick(1))
        worker.submit(_tick(2))
        pipe.gate.set()

        assert worker.wait_idle(timeout_s=5.0)

    assert pipe.seen == [0, 2]
    assert delivered == [0, 2]
    assert worker.slot.dropped_stale == 1
    assert worker.outputs_delivered == 2


def test_sink_failure_does_not_stop_worker() -> None:
    pipe = _GatedPipeline()
    pipe.gate.set()
    delivered: list[int] = []

    def _sink(out: OutputFrame) -> None:
        if out.tick_index == 0:
            raise RuntimeError("disk full")
        delivered.append(out.tick_index)

    with FrameWorker(pipeline=pipe, sink=_sink) as worker:
        worker.submit(_tick(0))
        assert worker.wait_idle(timeout_s=5.0)
        worker.submit(_tick(1))
        assert worker.wait_idle(timeout_s=5.0)

    assert delivered == [1]
    assert worker.outputs_delivered == 1
