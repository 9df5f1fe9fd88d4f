"""色相替换：HSV 转换、3D 颜色立方体（LUT）构建/缓存与三线性查表。"""

from .cube import ColorCubeCache, build_color_cube
from .hsv import hsv_to_rgb, rgb_to_hsv
from .remap import apply_color_cube

__all__ = [
    "ColorCubeCache",
    "apply_color_cube",
    "build_color_cube",
    "hsv_to_rgb",
    "rgb_to_hsv",
]
