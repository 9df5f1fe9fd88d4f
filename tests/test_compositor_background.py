"""背景合成与背景图加载的单测。"""

from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

from backdrop.background import BackgroundLoader, prepare_background_image
from backdrop.matting import BackgroundCompositor, adjust_saturation, blend_with_matte
from backdrop.state import PipelineState


def _solid(h: int, w: int, bgra: tuple[int, int, int, int]) -> np.ndarray:
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[:] = bgra
    return img


def test_prepare_background_crops_to_output_aspect() -> None:
    # 左右两条红色竖边应被居中裁剪掉。
    img = np.zeros((100, 400, 3), dtype=np.uint8)
    img[:, :100] = (0, 0, 255)
    img[:, 300:] = (0, 0, 255)
    img[:, 100:300] = (0, 255, 0)

    out = prepare_background_image(img, (64, 32))

    assert out.shape == (32, 64, 4)
    assert out.dtype == np.uint8
    assert np.all(out[..., 2] == 0)
    assert np.all(out[..., 1] == 255)
    assert np.all(out[..., 3] == 255)


def test_prepare_background_rejects_bad_size() -> None:
    with pytest.raises(ValueError):
        prepare_background_image(np.zeros((4, 4, 3), dtype=np.uint8), (0, 10))


def test_saturation_zero_gives_gray_and_keeps_alpha() -> None:
    img = _solid(2, 2, (255, 0, 0, 128))

    out = adjust_saturation(img, 0.0)

    assert out.dtype == np.float32
    assert np.allclose(out[..., 0], out[..., 1])
    assert np.allclose(out[..., 1], out[..., 2])
    assert np.allclose(out[..., 0], 0.0721 * 255.0, atol=1e-3)
    assert np.all(out[..., 3] == 128.0)


def test_saturation_one_is_identity() -> None:
    img = _solid(3, 3, (10, 200, 90, 255))
    assert np.array_equal(adjust_saturation(img, 1.0), img.astype(np.float32))


def test_blend_with_matte_interpolates_all_channels() -> None:
    fg = _solid(1, 3, (200, 100, 0, 255))
    bg = _solid(1, 3, (0, 0, 0, 0))
    matte = np.array([[0.0, 0.5, 1.0]], dtype=np.float32)

    out = blend_with_matte(fg, bg, matte)

    assert out[0, 0].tolist() == [0, 0, 0, 0]
    assert out[0, 1].tolist() == [100, 50, 0, 128]
    assert out[0, 2].tolist() == [200, 100, 0, 255]


def test_compositor_bypasses_when_background_hidden() -> None:
    color = _solid(4, 4, (1, 2, 3, 255))
    snap = PipelineState(background_visible=False).snapshot()

    out = BackgroundCompositor().composite(color, np.zeros((4, 4), dtype=np.float32), snap)

    assert out is color


def test_compositor_uses_empty_background_when_none_loaded() -> None:
    color = _solid(4, 4, (40, 80, 120, 255))
    snap = PipelineState(background_visible=True).snapshot()

    out = BackgroundCompositor().composite(color, np.zeros((4, 4), dtype=np.float32), snap)

    assert np.all(out == 0)


def test_compositor_fits_any_background_aspect_to_frame_size() -> None:
    state = PipelineState(background_visible=True)
    state.set_background_image(_solid(30, 100, (0, 255, 0, 255)))
    color = _solid(40, 60, (255, 0, 0, 255))

    comp = BackgroundCompositor()
    out = comp.composite(color, np.zeros((40, 60), dtype=np.float32), state.snapshot())

    assert out.shape == (40, 60, 4)
    assert np.all(out[..., 1] == 255)


def test_adjusted_background_is_cached_until_inputs_change() -> None:
    bg = _solid(8, 8, (10, 20, 30, 255))
    comp = BackgroundCompositor()

    a = comp.adjusted_background(bg, saturation=0.5, size=(8, 8))
    b = comp.adjusted_background(bg, saturation=0.5, size=(8, 8))
    assert a is b
    assert comp.saturation_builds == 1

    comp.adjusted_background(bg, saturation=0.2, size=(8, 8))
    assert comp.saturation_builds == 2


def test_loader_failure_keeps_previous_background(tmp_path: Path) -> None:
    state = PipelineState()
    with BackgroundLoader(state=state, size=(32, 16)) as loader:
        assert loader.load_sync(np.full((10, 10, 3), 7, dtype=np.uint8)) is True
        before = state.background_image
        assert before is not None
        assert before.shape == (16, 32, 4)

        assert loader.load_sync(tmp_path / "missing.png") is False
        assert loader.load_async(tmp_path / "missing.png").result(timeout=5.0) is False

    assert state.background_image is before


def test_loader_reads_image_file_asynchronously(tmp_path: Path) -> None:
    p = tmp_path / "bg.png"
    img = np.zeros((50, 200, 3), dtype=np.uint8)
    img[:] = (0, 0, 200)
    assert cv2.imwrite(str(p), img)

    state = PipelineState()
    with BackgroundLoader(state=state, size=(20, 10)) as loader:
        assert loader.load_async(p).result(timeout=5.0) is True

    bg = state.background_image
    assert bg is not None
    assert bg.shape == (10, 20, 4)
    assert not bg.flags.writeable
    assert np.all(bg[..., 2] == 200)
