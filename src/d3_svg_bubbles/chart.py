"""Bubble chart controller: clusters people by vote option with a force layout.

``BubbleChart`` owns one :class:`~d3_svg_bubbles.force.ForceSimulation` and one
rendering capability (anything shaped like
:class:`~d3_svg_bubbles.svg.SVGBubbleRenderer`). Each ``set_nodes`` call joins
the incoming records against the current nodes by id, so people who stay in
the chart keep moving from where they are while new people fade in at random
positions.
"""
from dataclasses import dataclass, field
import logging
import math
import random
import time

from d3_svg_bubbles.config import ChartConfig
from d3_svg_bubbles.force import ForceManyBody, ForceSimulation, ForceX, ForceY
from d3_svg_bubbles.svg import darker

logger = logging.getLogger(__name__)

ID_KEYS = ("personId", "person_id", "id")
CATEGORY_KEYS = ("option", "category")
COLOR_KEYS = ("colour", "color")
BORDER_COLOR_KEYS = ("borderColour", "border_colour", "borderColor", "border_color")

POINTER_EVENTS = ("mouseover", "mouseout", "click")


def _attr_lookup(obj, candidates, default=None):
    for key in candidates:
        try:
            val = obj[key]
        except (KeyError, ValueError):
            continue
        if val is not None:
            return val
    return default


def cluster_targets(width, height):
    """Map each vote option to the point its bubbles gather around."""
    left = (width / 3, height / 2)
    center = (width / 2, height / 2)
    right = (2 * width / 3, height / 2)
    return {
        "yes": left,
        "absent": center,
        "both": center,
        "no": right,
    }


@dataclass
class BubbleNode:
    id: object
    category: str
    color: str | None = None
    border_color: str | None = None
    radius: float = 10.0
    x: float = math.nan
    y: float = math.nan
    vx: float = 0.0
    vy: float = 0.0
    index: int | None = None


@dataclass
class Reconciliation:
    nodes: list = field(default_factory=list)
    created: list = field(default_factory=list)
    updated: list = field(default_factory=list)
    removed: list = field(default_factory=list)


def reconcile(previous, records, radius=10.0, place=None):
    """Join ``records`` against ``previous`` nodes by id.

    Matched nodes are updated in place (category and colours replaced,
    position and velocity untouched). Unmatched records become new nodes
    placed by ``place(record) -> (x, y)``. Duplicate ids in ``records``:
    the last one wins.
    """
    existing = {node.id: node for node in previous}
    incoming = {}
    for record in records:
        node_id = _attr_lookup(record, ID_KEYS)
        if node_id is None:
            raise ValueError(f"Record has no id (expected one of {ID_KEYS}): {record!r}")
        incoming[node_id] = record

    result = Reconciliation()
    for node_id, record in incoming.items():
        category = _attr_lookup(record, CATEGORY_KEYS)
        color = _attr_lookup(record, COLOR_KEYS)
        border_color = _attr_lookup(record, BORDER_COLOR_KEYS)
        node = existing.get(node_id)
        if node is not None:
            node.category = category
            node.color = color
            node.border_color = border_color
            result.updated.append(node)
        else:
            x, y = place(record) if place else (math.nan, math.nan)
            node = BubbleNode(
                id=node_id,
                category=category,
                color=color,
                border_color=border_color,
                radius=radius,
                x=x,
                y=y,
            )
            result.created.append(node)
        result.nodes.append(node)

    result.removed = [node for node in previous if node.id not in incoming]
    return result


class ChartEvents:
    """Receives notifications from a chart; override what you need."""

    def chart_settled(self):
        pass

    def node_hovered(self, node_id):
        pass

    def node_unhovered(self, node_id):
        pass

    def node_clicked(self, node_id):
        pass


class BubbleChart:
    def __init__(self, renderer, events=None, config=None, rng=None):
        self.config = config or ChartConfig(width=renderer.width, height=renderer.height)
        self.config.validate()
        self.renderer = renderer
        self.events = events or ChartEvents()
        self.rng = rng or random.Random()
        self.width = self.config.width
        self.height = self.config.height
        self.positions = cluster_targets(self.width, self.height)
        self.settled = False
        self._nodes = []

        strength = self.config.force_strength
        center_y = self.height / 2
        self.simulation = (
            ForceSimulation(random_source=self.rng)
            .velocity_decay(self.config.velocity_decay)
            .force("x", ForceX(lambda node, *_: self.option_position(node), strength))
            .force("y", ForceY(center_y, strength))
            .force("charge", ForceManyBody(self.charge))
            .on("tick", self.ticked)
        )
        # Nothing to lay out until the first set_nodes call.
        self.simulation.stop()

    @property
    def nodes(self):
        return list(self._nodes)

    def charge(self, node, *_):
        """Repulsion grows with the bubble's area so bigger bubbles keep more room."""
        return -math.pow(node.radius, 2.0) * self.config.force_strength

    def option_position(self, node):
        try:
            return self.positions[node.category][0]
        except KeyError:
            raise ValueError(
                f"Unknown category {node.category!r} for node {node.id!r}; "
                f"expected one of {sorted(self.positions)}"
            ) from None

    def _random_position(self, record):
        return (self.rng.random() * self.width, self.rng.random() * self.height)

    def set_nodes(self, records, restart=True):
        """Join ``records`` into the chart; with ``restart`` re-energize and resume ticking."""
        records = list(records)
        for record in records:
            category = _attr_lookup(record, CATEGORY_KEYS)
            if category not in self.positions:
                raise ValueError(
                    f"Unknown category {category!r} for record "
                    f"{_attr_lookup(record, ID_KEYS)!r}; expected one of {sorted(self.positions)}"
                )
            if _attr_lookup(record, COLOR_KEYS) is None:
                raise ValueError(
                    f"Record {_attr_lookup(record, ID_KEYS)!r} has no colour "
                    f"(expected one of {COLOR_KEYS})"
                )

        joined = reconcile(
            self._nodes,
            records,
            radius=self.config.bubble_radius,
            place=self._random_position,
        )
        logger.debug(
            "Reconciled %d records: %d created, %d updated, %d removed",
            len(records), len(joined.created), len(joined.updated), len(joined.removed),
        )

        for node in joined.removed:
            self.renderer.remove(node.id)

        handlers = (self.node_hovered, self.node_unhovered, self.node_clicked)
        for node in joined.created:
            self.renderer.create(node.id, radius=0, stroke_width=self.config.stroke_width)
            self.renderer.set_position(node.id, node.x, node.y)
            for event_type, handler in zip(POINTER_EVENTS, handlers):
                self.renderer.on(node.id, event_type, lambda node_id, *_, handler=handler: handler(node_id))

        for node in joined.nodes:
            self.renderer.set_fill(node.id, node.color)
            self.renderer.set_stroke(node.id, node.border_color or darker(node.color))
            self.renderer.animate_radius(node.id, node.radius, self.config.transition_duration)

        self._nodes = joined.nodes
        self.simulation.nodes(self._nodes)

        # Report settling again for this batch.
        self.settled = False
        if restart:
            self.simulation.alpha(1).restart()
        return joined

    def ticked(self):
        for node in self._nodes:
            self.renderer.set_position(node.id, node.x, node.y)
        self.handle_chart_settled()

    def handle_chart_settled(self):
        alpha_below_threshold = self.simulation.alpha() < self.config.settled_threshold
        if not self.settled and alpha_below_threshold:
            self.settled = True
            logger.info("Chart settled with %d nodes", len(self._nodes))
            self.events.chart_settled()

    def node_hovered(self, node_id):
        self.events.node_hovered(node_id)

    def node_unhovered(self, node_id):
        self.events.node_unhovered(node_id)

    def node_clicked(self, node_id):
        self.events.node_clicked(node_id)

    def step(self):
        return self.simulation.step()

    def run(self, max_ticks=None):
        return self.simulation.run(max_ticks)

    def destroy(self):
        self.simulation.stop()
        for node in self._nodes:
            self.renderer.remove(node.id)
        self._nodes = []
        self.simulation.nodes([])


def create_when_ready(factory, is_ready, config=None, interval=None, timeout=None, sleep=time.sleep):
    """Poll ``is_ready`` every ``interval`` seconds, then build the chart once.

    ``interval`` and ``timeout`` default to ``config.ready_poll_interval`` and
    ``config.ready_timeout``. Raises TimeoutError when ``timeout`` seconds pass
    without the target becoming ready. With no timeout it waits indefinitely.
    """
    config = config or ChartConfig()
    if interval is None:
        interval = config.ready_poll_interval
    if timeout is None:
        timeout = config.ready_timeout
    start = time.monotonic()
    attempts = 0
    while not is_ready():
        attempts += 1
        if timeout is not None and time.monotonic() - start >= timeout:
            raise TimeoutError(f"Chart target not ready after {attempts} checks ({timeout}s)")
        sleep(interval)
    if attempts:
        logger.debug("Chart target ready after %d checks", attempts)
    return factory()
