from __future__ import annotations

import json
from pathlib import Path

import pytest

from backdrop.config import BackdropConfig, load_backdrop_config
from backdrop.pipeline import BackdropPipeline


def test_load_backdrop_config_reads_sections(tmp_path: Path) -> None:
    # 说明：使用 JSON 配置来避免测试环境对 PyYAML 的依赖。
    cfg_path = tmp_path / "backdrop.json"
    cfg_path.write_text(
        json.dumps(
            {
                "output_width": 640,
                "output_height": 480,
                "matting": {"depth_margin_m": 0.3, "blur_radius": 2.0, "gamma": 0.8},
                "cube": {"size": 32, "hue_range_deg": 40},
                "controls": {"hue": 0.25, "background_visible": "yes", "background_image": "bg.jpg"},
                "log_level": "debug",
                "status_interval_s": 1.5,
            }
        ),
        encoding="utf-8",
    )

    cfg = load_backdrop_config(cfg_path)

    assert cfg.output_size == (640, 480)
    assert cfg.matting.depth_margin_m == 0.3
    assert cfg.matting.default_depth_cutoff_m == 1.0
    assert cfg.matting.gamma == 0.8
    assert cfg.cube.size == 32
    assert cfg.cube.hue_range_deg == 40.0
    assert cfg.controls.hue == 0.25
    assert cfg.controls.background_visible is True
    assert cfg.controls.background_image == Path("bg.jpg")
    assert cfg.log_level == "debug"
    assert cfg.status_interval_s == 1.5


def test_load_backdrop_config_supports_yaml(tmp_path: Path) -> None:
    pytest.importorskip("yaml")
    cfg_path = tmp_path / "backdrop.yaml"
    cfg_path.write_text("cube:\n  size: 16\ncontrols:\n  background_saturation: 0.4\n", encoding="utf-8")

    cfg = load_backdrop_config(cfg_path)

    assert cfg.cube.size == 16
    assert cfg.controls.background_saturation == 0.4
    assert cfg.output_size == (1280, 720)


@pytest.mark.parametrize(
    "data",
    [
        {"matting": {"gamma": 0}},
        {"matting": {"blur_radius": -1}},
        {"matting": {"depth_margin_m": -0.1}},
        {"cube": {"size": 1}},
        {"output_width": 0},
        {"controls": []},
    ],
)
def test_load_backdrop_config_rejects_bad_values(tmp_path: Path, data: dict) -> None:
    cfg_path = tmp_path / "bad.json"
    cfg_path.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(RuntimeError):
        load_backdrop_config(cfg_path)


def test_unsupported_config_suffix(tmp_path: Path) -> None:
    p = tmp_path / "cfg.toml"
    p.write_text("", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_backdrop_config(p)


def test_pipeline_initial_state_follows_config_controls() -> None:
    cfg = BackdropConfig()
    pipe = BackdropPipeline(config=cfg)
    snap = pipe.state.snapshot()

    assert snap.depth_cutoff == cfg.matting.default_depth_cutoff_m
    assert snap.background_visible is False
    assert pipe.cube_cache.size == 64
