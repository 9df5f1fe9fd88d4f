"""深度阈值与分割 mask 的单测。"""

from __future__ import annotations

import numpy as np
import pytest

from backdrop.depth import (
    DepthCutoffEstimator,
    build_segmentation_mask,
    estimate_depth_cutoff,
    face_center_to_depth_pixel,
)
from backdrop.models import FaceRegion


def test_mask_keeps_only_valid_depth_within_cutoff() -> None:
    depth = np.array([[0.0, np.nan, 0.5, 1.0, 1.5, -1.0]], dtype=np.float32)

    mask = build_segmentation_mask(depth, 1.0)

    assert mask.dtype == np.float32
    assert mask.shape == depth.shape
    assert mask.tolist() == [[0.0, 0.0, 1.0, 1.0, 0.0, 0.0]]


def test_mask_does_not_modify_input_depth() -> None:
    depth = np.array([[0.2, 3.0], [0.0, 0.9]], dtype=np.float32)
    before = depth.copy()

    build_segmentation_mask(depth, 1.0)

    assert np.array_equal(depth, before)


def test_face_center_is_scaled_per_axis_and_rounded_half_away() -> None:
    # 彩色 640x480，深度 320x120：x 缩放 0.5，y 缩放 0.25。
    face = FaceRegion(bbox=(2.0, 6.0, 4.0, 8.0))  # center=(3, 7)

    px, py = face_center_to_depth_pixel(face=face, color_size=(640, 480), depth_shape=(120, 320))

    assert (px, py) == (2, 2)  # 1.5 -> 2, 1.75 -> 2


def test_face_center_is_clamped_into_depth_frame() -> None:
    face = FaceRegion(bbox=(600.0, 460.0, 700.0, 520.0))  # 中心越界到 (650, 490)

    px, py = face_center_to_depth_pixel(face=face, color_size=(640, 480), depth_shape=(240, 320))

    assert (px, py) == (319, 239)


def test_cutoff_follows_face_depth_plus_margin() -> None:
    depth = np.full((240, 320), 3.0, dtype=np.float32)
    depth[120, 160] = 0.75
    face = FaceRegion(bbox=(300.0, 220.0, 340.0, 260.0))  # center=(320, 240)

    cutoff = estimate_depth_cutoff(depth=depth, face=face, color_size=(640, 480), current_cutoff=1.0)

    assert cutoff == pytest.approx(1.0)


def test_cutoff_is_sticky_without_face() -> None:
    depth = np.full((10, 10), 0.3, dtype=np.float32)
    est = DepthCutoffEstimator(margin_m=0.25)

    assert est.estimate(depth, None, color_size=(10, 10), current_cutoff=2.5) == 2.5


@pytest.mark.parametrize("bad", [0.0, -0.5, float("nan")])
def test_cutoff_keeps_previous_value_when_face_sample_is_invalid(bad: float) -> None:
    depth = np.full((10, 10), bad, dtype=np.float32)
    face = FaceRegion(bbox=(4.0, 4.0, 6.0, 6.0))
    est = DepthCutoffEstimator()

    assert est.estimate(depth, face, color_size=(10, 10), current_cutoff=1.7) == 1.7
