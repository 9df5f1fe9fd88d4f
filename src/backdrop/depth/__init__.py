"""深度相关的前景分割积木：自适应深度阈值 + 二值 mask。"""

from .cutoff import DepthCutoffEstimator, estimate_depth_cutoff, face_center_to_depth_pixel
from .mask import build_segmentation_mask

__all__ = [
    "DepthCutoffEstimator",
    "build_segmentation_mask",
    "estimate_depth_cutoff",
    "face_center_to_depth_pixel",
]
