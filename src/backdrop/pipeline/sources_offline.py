"""离线输入源：从 captures 目录产出 FrameTick。

目录约定：
- `captures_dir/metadata.jsonl`：每行一个 JSON 对象，允许混入两类记录：
  - tick 记录：{"tick_index", "timestamp_s", "color", "depth", "face", "color_dropped", "depth_dropped"}
    - color/depth 为相对 captures_dir 的文件路径（depth 可为 null）；
    - depth 推荐 `.npy`（float32，米）；16-bit PNG 等整数深度会在开流前被拒绝；
    - face 为 [x1, y1, x2, y2]、其列表（只用第一个）或 null。
  - 控制记录：{"control": "set_hue" | "toggle_background" | "set_background_visible" |
    "set_background_saturation" | "load_background" | "clear_background", "value": ...}
    按出现顺序作用到 PipelineState，用于复现录制时的手势/用户操作。
- 无法解析的行会跳过（记 warning），不会中断回放。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Optional

import cv2
import numpy as np

from backdrop.background import BackgroundLoader
from backdrop.models import FaceRegion, FrameTick
from backdrop.state import PipelineState

logger = logging.getLogger(__name__)

_DEPTH_IMAGE_SUFFIXES = {".png", ".tif", ".tiff", ".exr"}


class CaptureSourceError(RuntimeError):
    """captures 目录不可用（缺少 metadata.jsonl 等）。"""


def iter_metadata_records(meta_path: Path) -> Iterator[dict[str, Any]]:
    """逐行读取 metadata.jsonl，跳过空行与坏行。"""

    with Path(meta_path).open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            s = line.strip()
            if not s:
                continue
            try:
                rec = json.loads(s)
            except json.JSONDecodeError as exc:
                logger.warning("metadata.jsonl:%d invalid json, skipped: %s", line_no, exc)
                continue
            if isinstance(rec, dict):
                yield rec


def _meta_path(captures_dir: Path) -> Path:
    meta_path = Path(captures_dir) / "metadata.jsonl"
    if not meta_path.exists():
        raise CaptureSourceError(f"metadata.jsonl not found: {meta_path}")
    return meta_path


def _resolve(captures_dir: Path, file: Any) -> Optional[Path]:
    if not isinstance(file, str) or not file.strip():
        return None
    p = Path(file)
    if not p.is_absolute():
        p = (captures_dir / p).resolve()
    return p


def read_depth_file(path: Path) -> np.ndarray:
    """读取深度文件；保持原始 dtype（格式校验由流水线负责）。"""

    path = Path(path)
    if path.suffix.lower() == ".npy":
        return np.load(str(path), allow_pickle=False)
    if path.suffix.lower() in _DEPTH_IMAGE_SUFFIXES:
        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED | cv2.IMREAD_ANYDEPTH)
        if img is None:
            raise CaptureSourceError(f"无法读取深度文件: {path}")
        return img
    raise CaptureSourceError(f"不支持的深度文件类型: {path}（仅支持 .npy/.png/.tif/.tiff/.exr）")


def detect_capture_depth_format(captures_dir: Path) -> Optional[np.dtype]:
    """返回第一条带深度的 tick 的深度 dtype；没有任何深度帧时返回 None。"""

    captures_dir = Path(captures_dir).resolve()
    for rec in iter_metadata_records(_meta_path(captures_dir)):
        if "control" in rec:
            continue
        p = _resolve(captures_dir, rec.get("depth"))
        if p is None or not p.exists():
            continue
        try:
            return np.asarray(read_depth_file(p)).dtype
        except (CaptureSourceError, ValueError, OSError, EOFError) as exc:
            logger.warning("depth file unreadable while detecting format, skipped: %s (%s)", p, exc)
    return None


def _parse_face(x: Any) -> Optional[FaceRegion]:
    if x is None:
        return None
    if isinstance(x, list) and x and isinstance(x[0], (list, tuple)):
        x = x[0]
    if not isinstance(x, (list, tuple)) or len(x) != 4:
        return None
    try:
        x1, y1, x2, y2 = (float(v) for v in x)
    except (TypeError, ValueError):
        return None
    return FaceRegion(bbox=(x1, y1, x2, y2))


def apply_control_record(
    rec: dict[str, Any],
    *,
    state: PipelineState,
    captures_dir: Path,
    loader: Optional[BackgroundLoader] = None,
    wait_background: bool = True,
) -> None:
    """把一条控制记录作用到 PipelineState。

    说明：
        控制记录来自录制文件，值可能不合法；非法值只记 warning，不中断回放。
    """

    op = str(rec.get("control", "")).strip()
    value = rec.get("value")
    try:
        if op == "set_hue":
            state.set_hue(float(value))
        elif op == "toggle_background":
            state.toggle_background_visible()
        elif op == "set_background_visible":
            state.set_background_visible(bool(value))
        elif op == "set_background_saturation":
            state.set_background_saturation(float(value))
        elif op == "clear_background":
            state.clear_background()
        elif op == "load_background":
            if loader is None:
                logger.warning("load_background control ignored: no background loader configured")
                return
            p = _resolve(captures_dir, value)
            if p is None:
                logger.warning("load_background control without a path, ignored")
                return
            fut = loader.load_async(p)
            if wait_background:
                fut.result()
        else:
            logger.warning("unknown control record ignored: %r", op)
    except (TypeError, ValueError) as exc:
        logger.warning("control %r with value %r rejected: %s", op, value, exc)


def iter_capture_ticks(
    *,
    captures_dir: Path,
    state: Optional[PipelineState] = None,
    loader: Optional[BackgroundLoader] = None,
    max_ticks: int = 0,
    wait_background: bool = True,
) -> Iterator[FrameTick]:
    """从 captures/metadata.jsonl 迭代读取 FrameTick。

    Args:
        captures_dir: captures 目录。
        state: 传入时会按顺序回放控制记录；为 None 时忽略控制记录。
        loader: 处理 load_background 控制记录的加载器。
        max_ticks: 最多产出多少个 tick（0 表示不限）。
        wait_background: 回放时是否等待背景加载完成（离线回放默认等待，保证可复现）。

    Yields:
        FrameTick。
    """

    captures_dir = Path(captures_dir).resolve()
    meta_path = _meta_path(captures_dir)
    ticks_done = 0

    for rec in iter_metadata_records(meta_path):
        if "control" in rec:
            if state is not None:
                apply_control_record(
                    rec,
                    state=state,
                    captures_dir=captures_dir,
                    loader=loader,
                    wait_background=wait_background,
                )
            continue

        tick_index = int(rec.get("tick_index", ticks_done))
        color_dropped = bool(rec.get("color_dropped", False))
        depth_dropped = bool(rec.get("depth_dropped", False))

        color_path = _resolve(captures_dir, rec.get("color"))
        color = None
        if color_path is not None and color_path.exists():
            color = cv2.imread(str(color_path), cv2.IMREAD_UNCHANGED)
        if color is None:
            # 彩色帧缺失等同于同步层丢帧。
            logger.warning("tick %d: color frame missing (%s), treated as dropped", tick_index, color_path)
            color = np.zeros((1, 1, 4), dtype=np.uint8)
            color_dropped = True

        depth = None
        depth_path = _resolve(captures_dir, rec.get("depth"))
        if depth_path is not None:
            if depth_path.exists():
                try:
                    depth = read_depth_file(depth_path)
                except (CaptureSourceError, ValueError, OSError, EOFError) as exc:
                    # 坏深度文件只影响本 tick，按同步层丢帧处理。
                    logger.warning("tick %d: depth file unreadable (%s), treated as dropped: %s", tick_index, depth_path, exc)
                    depth_dropped = True
            else:
                logger.warning("tick %d: depth file missing: %s", tick_index, depth_path)

        ts = rec.get("timestamp_s")
        yield FrameTick(
            color=color,
            depth=depth,
            face=_parse_face(rec.get("face")),
            color_dropped=color_dropped,
            depth_dropped=depth_dropped,
            tick_index=tick_index,
            timestamp_s=float(ts) if ts is not None else None,
        )

        ticks_done += 1
        if int(max_ticks) > 0 and ticks_done >= int(max_ticks):
            break
