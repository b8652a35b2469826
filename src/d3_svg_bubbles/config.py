from dataclasses import dataclass, fields
from pathlib import Path
import tomllib


DEFAULT_API_BASE_URL = "http://localhost:4567"


@dataclass(frozen=True)
class ChartConfig:
    width: float = 1000.0
    height: float = 800.0
    bubble_radius: float = 10.0
    force_strength: float = 0.03
    velocity_decay: float = 0.2
    # Once alpha drops below this the chart reports itself settled.
    settled_threshold: float = 0.2
    transition_duration: int = 2000  # ms
    stroke_width: float = 2.0
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout: float = 10.0
    ready_poll_interval: float = 0.01  # seconds
    ready_timeout: float | None = None

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("width and height must be positive")
        if self.bubble_radius <= 0:
            raise ValueError("bubble_radius must be positive")
        if not (0 <= self.velocity_decay <= 1):
            raise ValueError("velocity_decay must be between 0 and 1")
        if not (0 <= self.settled_threshold <= 1):
            raise ValueError("settled_threshold must be between 0 and 1")
        if self.transition_duration < 0:
            raise ValueError("transition_duration must not be negative")
        if self.api_timeout <= 0:
            raise ValueError("api_timeout must be positive")
        if self.ready_poll_interval < 0:
            raise ValueError("ready_poll_interval must not be negative")
        if self.ready_timeout is not None and self.ready_timeout < 0:
            raise ValueError("ready_timeout must not be negative")

    def to_toml(self) -> str:
        lines: list[str] = []
        lines.append("[chart]")
        lines.append(f"width = {float(self.width)}")
        lines.append(f"height = {float(self.height)}")
        lines.append(f"bubble_radius = {float(self.bubble_radius)}")
        lines.append(f"force_strength = {float(self.force_strength)}")
        lines.append(f"velocity_decay = {float(self.velocity_decay)}")
        lines.append(f"settled_threshold = {float(self.settled_threshold)}")
        lines.append(f"transition_duration = {int(self.transition_duration)}")
        lines.append(f"stroke_width = {float(self.stroke_width)}")
        lines.append(f"ready_poll_interval = {float(self.ready_poll_interval)}")
        if self.ready_timeout is not None:
            lines.append(f"ready_timeout = {float(self.ready_timeout)}")
        lines.append("")
        lines.append("[api]")
        lines.append(f'base_url = "{self.api_base_url}"')
        lines.append(f"timeout = {float(self.api_timeout)}")
        lines.append("")
        return "\n".join(lines)


_CHART_KEYS = {f.name for f in fields(ChartConfig)} - {"api_base_url", "api_timeout"}


def load_config(path: Path) -> ChartConfig:
    raw = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
    chart = raw.get("chart", {})
    api = raw.get("api", {})

    unknown = set(chart) - _CHART_KEYS
    if unknown:
        raise ValueError(f"Unknown [chart] keys: {', '.join(sorted(unknown))}")

    defaults = ChartConfig()
    ready_timeout = chart.get("ready_timeout")
    cfg = ChartConfig(
        width=float(chart.get("width", defaults.width)),
        height=float(chart.get("height", defaults.height)),
        bubble_radius=float(chart.get("bubble_radius", defaults.bubble_radius)),
        force_strength=float(chart.get("force_strength", defaults.force_strength)),
        velocity_decay=float(chart.get("velocity_decay", defaults.velocity_decay)),
        settled_threshold=float(chart.get("settled_threshold", defaults.settled_threshold)),
        transition_duration=int(chart.get("transition_duration", defaults.transition_duration)),
        stroke_width=float(chart.get("stroke_width", defaults.stroke_width)),
        ready_poll_interval=float(chart.get("ready_poll_interval", defaults.ready_poll_interval)),
        ready_timeout=None if ready_timeout is None else float(ready_timeout),
        api_base_url=str(api.get("base_url", defaults.api_base_url)),
        api_timeout=float(api.get("timeout", defaults.api_timeout)),
    )
    cfg.validate()
    return cfg


def write_default_config(path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ChartConfig().to_toml(), encoding="utf-8")
