"""PipelineState 控制调用的单测。"""

from __future__ import annotations

import threading
import unittest

import numpy as np

from backdrop.state import PipelineState


class TestPipelineState(unittest.TestCase):
    def test_defaults(self) -> None:
        snap = PipelineState().snapshot()
        self.assertEqual(snap.depth_cutoff, 1.0)
        self.assertEqual(snap.hue, 0.0)
        self.assertFalse(snap.background_visible)
        self.assertEqual(snap.background_saturation, 1.0)
        self.assertIsNone(snap.background_image)

    def test_hue_wraps_and_rejects_non_finite(self) -> None:
        st = PipelineState()
        self.assertAlmostEqual(st.set_hue(1.25), 0.25)
        self.assertAlmostEqual(st.set_hue(-0.25), 0.75)
        self.assertEqual(st.set_hue(1.0), 0.0)
        self.assertEqual(st.set_hue(-1e-20), 0.0)
        self.assertEqual(st.snapshot().hue, 0.0)
        with self.assertRaises(ValueError):
            st.set_hue(float("nan"))
        self.assertAlmostEqual(st.hue, 0.0)

    def test_saturation_is_clamped(self) -> None:
        st = PipelineState()
        self.assertEqual(st.set_background_saturation(2.0), 1.0)
        self.assertEqual(st.set_background_saturation(-1.0), 0.0)
        with self.assertRaises(ValueError):
            st.set_background_saturation(float("inf"))

    def test_toggle(self) -> None:
        st = PipelineState()
        self.assertTrue(st.toggle_background_visible())
        self.assertFalse(st.toggle_background_visible())

    def test_depth_cutoff_must_be_positive(self) -> None:
        st = PipelineState()
        with self.assertRaises(ValueError):
            st.set_depth_cutoff(0.0)
        with self.assertRaises(ValueError):
            PipelineState(depth_cutoff=-1.0)

    def test_background_image_swap_and_clear(self) -> None:
        st = PipelineState()
        with self.assertRaises(ValueError):
            st.set_background_image(np.zeros((4, 4, 3), dtype=np.uint8))

        img = np.zeros((4, 4, 4), dtype=np.uint8)
        st.set_background_image(img)
        snap = st.snapshot()
        held = snap.background_image
        self.assertIsNotNone(held)
        self.assertIsNot(held, img)
        self.assertTrue(np.array_equal(held, img))
        self.assertFalse(held.flags.writeable)
        # 调用方自己的数组仍可写，之后的修改不影响已保存的背景。
        self.assertTrue(img.flags.writeable)
        img[:] = 9
        self.assertEqual(int(held.max()), 0)

        st.clear_background()
        self.assertIsNone(st.background_image)
        # 旧快照仍持有旧引用。
        self.assertIs(snap.background_image, held)

    def test_concurrent_writers_leave_consistent_state(self) -> None:
        st = PipelineState()

        def _writer(k: int) -> None:
            for i in range(200):
                st.set_hue((k * 200 + i) / 1000.0)
                st.set_background_saturation(i / 200.0)
                st.toggle_background_visible()

        threads = [threading.Thread(target=_writer, args=(k,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = st.snapshot()
        self.assertTrue(0.0 <= snap.hue < 1.0)
        self.assertTrue(0.0 <= snap.background_saturation <= 1.0)
        # 800 次切换（偶数）后回到初始值。
        self.assertFalse(snap.background_visible)


if __name__ == "__main__":
    unittest.main()
