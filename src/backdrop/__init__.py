"""backdrop：深度抠像 + 背景替换 + 色相替换的实时视频流水线。

说明：
- 逐帧处理：深度阈值（人脸驱动） -> alpha matte -> 背景合成 -> 3D 颜色立方体换色。
- 本包提供算法组件（depth/matting/color）、共享控制状态（state）、在线/离线共享流水线（pipeline）
  以及应用入口（apps）。

对外推荐从 `backdrop.api` 导入少量稳定入口函数，避免外部项目依赖内部目录结构。
"""

from backdrop.api import build_pipeline, iter_output_frames_from_captures

__all__ = [
    "build_pipeline",
    "iter_output_frames_from_captures",
]
