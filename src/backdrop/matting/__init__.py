"""抠像与合成：alpha matte 生成 + 背景替换合成。"""

from .compositor import BackgroundCompositor, adjust_saturation, blend_with_matte
from .matte import AlphaMatteGenerator, generate_alpha_matte

__all__ = [
    "AlphaMatteGenerator",
    "BackgroundCompositor",
    "adjust_saturation",
    "blend_with_matte",
    "generate_alpha_matte",
]
