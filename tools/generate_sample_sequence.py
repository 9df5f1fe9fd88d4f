# -*- coding: utf-8 -*-

"""生成离线可跑通的 sample_sequence（彩色图 + 深度 .npy + metadata.jsonl）。

说明：
- 场景：远处为红色墙面（深度 3m），近处一个蓝色“人物”方块（深度 0.8m）在画面中左右移动，
  人脸框位于方块上部。
- metadata.jsonl 中穿插控制记录：中途打开背景替换、设置色相、降低背景饱和度，
  并模拟一次同步层丢帧。
- 背景图写到 background.png（横向渐变，宽高比与画面不同，用于验证裁剪）。
- 输出目录：data/captures/sample_sequence/

运行后可用：
- python -m backdrop.apps.offline_composite --captures-dir data/captures/sample_sequence --out-dir data/tools_output/frames
"""

from __future__ import annotations

import json
from pathlib import Path

import cv2
import numpy as np


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _background_image(w: int, h: int) -> np.ndarray:
    xs = np.linspace(0, 255, w, dtype=np.float32)
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[..., 0] = xs.astype(np.uint8)[None, :]
    img[..., 1] = 160
    img[..., 2] = (255 - xs).astype(np.uint8)[None, :]
    return img


def main() -> int:
    root = _repo_root()
    seq_dir = root / "data" / "captures" / "sample_sequence"
    (seq_dir / "color").mkdir(parents=True, exist_ok=True)
    (seq_dir / "depth").mkdir(parents=True, exist_ok=True)

    w, h = 320, 240
    dw, dh = 160, 120
    n_ticks = 12
    red = (0, 0, 220)  # BGR
    blue = (200, 60, 20)

    bg_path = seq_dir / "background.png"
    if not cv2.imwrite(str(bg_path), _background_image(400, 200)):
        raise RuntimeError(f"写入失败: {bg_path}")

    records: list[dict] = []
    for ti in range(n_ticks):
        if ti == 2:
            records.append({"control": "load_background", "value": "background.png"})
            records.append({"control": "set_background_visible", "value": True})
        if ti == 6:
            records.append({"control": "set_hue", "value": 0.5})
        if ti == 9:
            records.append({"control": "set_background_saturation", "value": 0.0})

        x0 = 60 + ti * 10
        x1, y1, x2, y2 = x0, 60, x0 + 100, 230

        img = np.zeros((h, w, 3), dtype=np.uint8)
        img[:] = red
        cv2.rectangle(img, (x1, y1), (x2, y2), blue, thickness=-1)
        color_rel = f"color/{ti:06d}.png"
        if not cv2.imwrite(str(seq_dir / color_rel), img):
            raise RuntimeError(f"写入失败: {seq_dir / color_rel}")

        depth = np.full((dh, dw), 3.0, dtype=np.float32)
        depth[y1 // 2 : y2 // 2, x1 // 2 : x2 // 2] = 0.8
        # 少量无效读数。
        depth[:4, :] = 0.0
        depth_rel = f"depth/{ti:06d}.npy"
        np.save(str(seq_dir / depth_rel), depth)

        records.append(
            {
                "tick_index": ti,
                "timestamp_s": round(ti / 30.0, 6),
                "color": color_rel,
                "depth": depth_rel,
                "face": [x1 + 30, y1 + 10, x2 - 30, y1 + 60],
                "color_dropped": False,
                "depth_dropped": ti == 4,
            }
        )

    meta_path = seq_dir / "metadata.jsonl"
    with meta_path.open("w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")

    # Use ASCII to avoid Windows console encoding issues.
    print(f"Generated sample_sequence: ticks={n_ticks} -> {seq_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
