from pathlib import Path

import pytest

from d3_svg_bubbles import ChartConfig, load_config
from d3_svg_bubbles.config import write_default_config


def test_default_config_round_trips_through_toml(tmp_path: Path) -> None:
    path = tmp_path / "chart.toml"
    write_default_config(path)
    assert load_config(path) == ChartConfig()


def test_load_config_reads_chart_and_api_tables(tmp_path: Path) -> None:
    path = tmp_path / "chart.toml"
    path.write_text(
        "\n".join(
            [
                "[chart]",
                "width = 640",
                "height = 480",
                "settled_threshold = 0.1",
                "ready_timeout = 2.5",
                "",
                "[api]",
                'base_url = "http://votes.example"',
                "timeout = 3",
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert (cfg.width, cfg.height) == (640.0, 480.0)
    assert cfg.settled_threshold == 0.1
    assert cfg.ready_timeout == 2.5
    assert cfg.api_base_url == "http://votes.example"
    assert cfg.api_timeout == 3.0
    assert cfg.bubble_radius == 10.0


def test_load_config_rejects_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "chart.toml"
    path.write_text("[chart]\nradius = 4\n", encoding="utf-8")
    with pytest.raises(ValueError, match="radius"):
        load_config(path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"width": 0},
        {"bubble_radius": -1},
        {"velocity_decay": 1.5},
        {"settled_threshold": 2},
        {"api_timeout": 0},
        {"ready_timeout": -1},
    ],
)
def test_validate_rejects_out_of_range_values(overrides) -> None:
    with pytest.raises(ValueError):
        ChartConfig(**overrides).validate()
