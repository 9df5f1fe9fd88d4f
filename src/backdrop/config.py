"""配置模型（dataclass）与 YAML/JSON 加载。

目标：
- 用 dataclass 表达抠像/换背景/换色流水线所需的关键参数
- 支持从 `.yaml/.yml/.json` 加载

说明：
- CLI 仍是主入口；配置文件用于“可复用的一组参数”。
- 所有字段都带单位语义：*_m 为米，*_deg 为角度，*_s 为秒。
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def _load_mapping(path: Path) -> dict[str, Any]:
    path = Path(path)
    suf = path.suffix.lower()

    if suf == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    elif suf in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover
            raise RuntimeError("PyYAML 未安装，无法读取 YAML 配置") from exc

        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    else:
        raise RuntimeError(f"不支持的配置文件类型: {path}（仅支持 .json/.yaml/.yml）")

    if not isinstance(data, dict):
        raise RuntimeError("配置文件顶层必须是对象（dict）")

    return data


def _as_optional_path(x: Any) -> Path | None:
    if x is None:
        return None
    s = str(x).strip()
    if not s:
        return None
    return Path(s).expanduser()


def _as_section(data: dict[str, Any], key: str) -> dict[str, Any]:
    sec = data.get(key, {})
    if sec is None:
        return {}
    if not isinstance(sec, dict):
        raise RuntimeError(f"config field '{key}' must be an object")
    return sec


def _as_positive_float(x: Any, *, name: str) -> float:
    v = float(x)
    if not math.isfinite(v) or v <= 0:
        raise RuntimeError(f"config field '{name}' must be > 0 (got {x!r})")
    return v


def _as_bool(x: Any, default: bool) -> bool:
    if x is None:
        return bool(default)
    if isinstance(x, bool):
        return x
    if isinstance(x, str):
        return x.strip().lower() in {"1", "true", "yes", "on"}
    return bool(x)


@dataclass(frozen=True)
class MattingConfig:
    """深度抠像参数。"""

    # 人脸中心深度 + margin 作为前景深度上限。
    depth_margin_m: float = 0.25
    # 尚未观测到人脸时使用的默认上限。
    default_depth_cutoff_m: float = 1.0
    blur_radius: float = 5.0
    gamma: float = 0.5


@dataclass(frozen=True)
class ColorCubeConfig:
    """颜色立方体（3D LUT）参数。"""

    size: int = 64
    reference_hue_deg: float = 0.0
    # 被替换的色相窗口总宽度（以 reference_hue 为中心）。
    hue_range_deg: float = 60.0
    # 缓存 key 的色相量化步长（单位：整圈）。
    hue_quantum: float = 1.0 / 3600.0


@dataclass(frozen=True)
class ControlConfig:
    """启动时的控制状态（之后由外部控制调用修改）。"""

    hue: float = 0.0
    background_visible: bool = False
    background_saturation: float = 1.0
    background_image: Path | None = None


@dataclass(frozen=True)
class BackdropConfig:
    output_width: int = 1280
    output_height: int = 720
    matting: MattingConfig = field(default_factory=MattingConfig)
    cube: ColorCubeConfig = field(default_factory=ColorCubeConfig)
    controls: ControlConfig = field(default_factory=ControlConfig)

    log_level: str = "INFO"
    log_file: Path | None = None
    # 周期性状态输出间隔（秒，0 关闭）。
    status_interval_s: float = 0.0

    @property
    def output_size(self) -> tuple[int, int]:
        return (int(self.output_width), int(self.output_height))


def load_backdrop_config(path: Path) -> BackdropConfig:
    """加载流水线配置。

    支持的结构（所有字段均可省略）：

    ```yaml
    output_width: 1280
    output_height: 720
    matting: {depth_margin_m: 0.25, default_depth_cutoff_m: 1.0, blur_radius: 5.0, gamma: 0.5}
    cube: {size: 64, reference_hue_deg: 0, hue_range_deg: 60}
    controls: {hue: 0.0, background_visible: false, background_saturation: 1.0, background_image: bg.jpg}
    log_level: INFO
    ```
    """

    data = _load_mapping(Path(path))

    mat = _as_section(data, "matting")
    cub = _as_section(data, "cube")
    ctl = _as_section(data, "controls")

    matting = MattingConfig(
        depth_margin_m=float(mat.get("depth_margin_m", 0.25)),
        default_depth_cutoff_m=_as_positive_float(
            mat.get("default_depth_cutoff_m", 1.0), name="matting.default_depth_cutoff_m"
        ),
        blur_radius=float(mat.get("blur_radius", 5.0)),
        gamma=_as_positive_float(mat.get("gamma", 0.5), name="matting.gamma"),
    )
    if matting.blur_radius < 0:
        raise RuntimeError("config field 'matting.blur_radius' must be >= 0")
    if not math.isfinite(matting.depth_margin_m) or matting.depth_margin_m < 0:
        raise RuntimeError("config field 'matting.depth_margin_m' must be >= 0")

    cube_size = int(cub.get("size", 64))
    if cube_size < 2:
        raise RuntimeError("config field 'cube.size' must be >= 2")
    cube = ColorCubeConfig(
        size=cube_size,
        reference_hue_deg=float(cub.get("reference_hue_deg", 0.0)),
        hue_range_deg=_as_positive_float(cub.get("hue_range_deg", 60.0), name="cube.hue_range_deg"),
        hue_quantum=_as_positive_float(cub.get("hue_quantum", 1.0 / 3600.0), name="cube.hue_quantum"),
    )

    controls = ControlConfig(
        hue=float(ctl.get("hue", 0.0)),
        background_visible=_as_bool(ctl.get("background_visible"), False),
        background_saturation=float(ctl.get("background_saturation", 1.0)),
        background_image=_as_optional_path(ctl.get("background_image")),
    )

    width = int(data.get("output_width", 1280))
    height = int(data.get("output_height", 720))
    if width <= 0 or height <= 0:
        raise RuntimeError("config fields 'output_width'/'output_height' must be > 0")

    return BackdropConfig(
        output_width=width,
        output_height=height,
        matting=matting,
        cube=cube,
        controls=controls,
        log_level=str(data.get("log_level", "INFO")).strip() or "INFO",
        log_file=_as_optional_path(data.get("log_file")),
        status_interval_s=float(data.get("status_interval_s", 0.0)),
    )
