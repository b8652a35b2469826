import gc
import math
import random
import typing
import weakref

import pytest

from d3_svg_bubbles import (
    BubbleChart,
    BubbleNode,
    ChartConfig,
    ChartEvents,
    SVGBubbleRenderer,
    cluster_targets,
    create_when_ready,
    darker,
    reconcile,
)


class RecordingEvents(ChartEvents):
    def __init__(self):
        self.calls = []

    def chart_settled(self):
        self.calls.append(("settled", None))

    def node_hovered(self, node_id):
        self.calls.append(("hovered", node_id))

    def node_unhovered(self, node_id):
        self.calls.append(("unhovered", node_id))

    def node_clicked(self, node_id):
        self.calls.append(("clicked", node_id))

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)


def _chart(seed=7, width=1000, height=800):
    events = RecordingEvents()
    renderer = SVGBubbleRenderer(width, height)
    chart = BubbleChart(renderer, events=events, rng=random.Random(seed))
    return chart, renderer, events


def _records(*rows):
    return [
        {"personId": pid, "option": option, "colour": "#1f77b4", "party": "Independent"}
        for pid, option in rows
    ]


def _by_id(chart):
    return {node.id: node for node in chart.nodes}


def test_cluster_targets_split_viewport_in_thirds():
    targets = cluster_targets(1000, 800)
    assert math.isclose(targets["yes"][0], 1000 / 3)
    assert math.isclose(targets["no"][0], 2000 / 3)
    assert targets["absent"] == targets["both"] == (500, 400)
    assert {y for _, y in targets.values()} == {400}


def test_chart_does_not_animate_before_data_arrives():
    chart, renderer, events = _chart()
    assert not chart.simulation.running
    assert chart.step() is False
    assert renderer.ids() == []
    assert events.calls == []


def test_set_nodes_creates_visuals_with_random_positions_in_viewport():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes"), ("b", "no")))

    assert renderer.ids() == ["a", "b"]
    for node in chart.nodes:
        assert 0 <= node.x < 1000
        assert 0 <= node.y < 800
        assert node.vx == 0.0 and node.vy == 0.0
        assert node.radius == 10
    assert chart.simulation.running
    assert chart.simulation.alpha() == 1.0


def test_set_nodes_styles_circles_and_grows_radius():
    chart, renderer, _ = _chart()
    records = _records(("a", "yes"), ("b", "no"))
    records[1]["borderColour"] = "#222222"
    chart.set_nodes(records)

    circles = {el.get("data-id"): el for el in renderer.circles().elements}
    assert circles["a"].get("fill") == "#1f77b4"
    assert circles["a"].get("stroke") == darker("#1f77b4")
    assert circles["b"].get("stroke") == "#222222"
    assert circles["a"].get("r") == "10.0"
    assert renderer.circles().classed("bubble dim")
    animate = circles["a"][0]
    assert animate.get("dur") == "2000ms"
    assert animate.get("from") == "0"


def test_resubmitting_identical_records_leaves_motion_untouched():
    chart, _, _ = _chart()
    records = _records(("a", "yes"), ("b", "no"), ("c", "absent"))
    chart.set_nodes(records)
    chart.run(max_ticks=25)
    before = {n.id: (n.x, n.y, n.vx, n.vy) for n in chart.nodes}

    chart.set_nodes(records)

    after = {n.id: (n.x, n.y, n.vx, n.vy) for n in chart.nodes}
    assert after == before
    assert chart.settled is False
    assert chart.simulation.alpha() == 1.0
    assert chart.simulation.running


def test_changed_category_keeps_position_and_replaces_display_attributes():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes"), ("b", "no")))
    chart.run(max_ticks=10)
    node_a = _by_id(chart)["a"]
    px, py = node_a.x, node_a.y

    chart.set_nodes(
        [
            {"personId": "a", "option": "no", "colour": "#d62728", "borderColour": "#000000"},
            {"personId": "b", "option": "no", "colour": "#1f77b4"},
        ]
    )

    updated = _by_id(chart)["a"]
    assert updated is node_a
    assert (updated.x, updated.y) == (px, py)
    assert updated.category == "no"
    assert updated.color == "#d62728"
    assert updated.border_color == "#000000"
    assert math.isclose(chart.option_position(updated), 2000 / 3)
    circle = renderer.svg.select("circle[data-id='a']")
    assert circle.attr("fill") == "#d62728"
    assert circle.attr("stroke") == "#000000"


def test_omitted_ids_are_removed_from_chart_and_renderer():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes"), ("b", "no"), ("c", "both")))
    chart.run(max_ticks=5)

    joined = chart.set_nodes(_records(("a", "yes"), ("c", "both"), ("d", "no")))

    assert [n.id for n in joined.removed] == ["b"]
    assert [n.id for n in joined.created] == ["d"]
    assert [n.id for n in joined.updated] == ["a", "c"]
    assert "b" not in _by_id(chart)
    assert not renderer.has("b")
    assert sorted(renderer.ids()) == ["a", "c", "d"]
    assert [n.id for n in chart.simulation.nodes()] == ["a", "c", "d"]


def test_chart_settled_fires_once_per_submission():
    chart, _, events = _chart()
    records = _records(("a", "yes"), ("b", "no"))
    chart.set_nodes(records)

    settled_at = []
    chart.simulation.on(
        "tick",
        lambda: settled_at.append(chart.simulation.alpha()) if chart.settled and not settled_at else None,
        name="settle-watch",
    )
    chart.run()

    assert events.count("settled") == 1
    assert settled_at and settled_at[0] < 0.2
    assert not chart.simulation.running

    chart.simulation.alpha(0.1).restart()
    chart.run(max_ticks=5)
    assert events.count("settled") == 1

    chart.set_nodes(records)
    assert chart.settled is False
    chart.run()
    assert events.count("settled") == 2


def test_ticks_move_rendered_circles():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes")))
    chart.step()
    node = chart.nodes[0]
    circle = renderer.svg.select("circle[data-id='a']")
    assert float(circle.attr("cx")) == pytest.approx(node.x, abs=1e-3)
    assert float(circle.attr("cy")) == pytest.approx(node.y, abs=1e-3)


def test_three_categories_converge_on_their_targets():
    chart, _, _ = _chart(seed=42)
    chart.set_nodes(_records(("y", "yes"), ("n", "no"), ("a", "absent")))
    frames = chart.run(max_ticks=400)

    assert frames <= 301
    assert chart.simulation.alpha() < 0.001
    targets = {"y": 1000 / 3, "n": 2000 / 3, "a": 500}
    for node_id, node in _by_id(chart).items():
        assert abs(node.x - targets[node_id]) < node.radius * 3
        assert abs(node.y - 400) < node.radius * 3


def test_unknown_category_fails_before_changing_state():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes")))
    with pytest.raises(ValueError, match="maybe"):
        chart.set_nodes(_records(("a", "no"), ("b", "maybe")))

    assert _by_id(chart)["a"].category == "yes"
    assert renderer.ids() == ["a"]


def test_option_position_rejects_unknown_category():
    chart, _, _ = _chart()
    with pytest.raises(ValueError):
        chart.option_position(BubbleNode(id="x", category="abstain"))


def test_pointer_events_are_forwarded_with_entity_id():
    chart, renderer, events = _chart()
    chart.set_nodes(_records(("p1", "yes"), ("p2", "no")))

    renderer.dispatch("p1", "mouseover")
    renderer.dispatch("p1", "mouseout")
    renderer.dispatch("p2", "click")
    renderer.dispatch("p2", "click")

    assert events.calls == [
        ("hovered", "p1"),
        ("unhovered", "p1"),
        ("clicked", "p2"),
        ("clicked", "p2"),
    ]


def test_reconcile_duplicate_ids_last_write_wins():
    joined = reconcile(
        [],
        [
            {"person_id": 1, "option": "yes", "colour": "#111111"},
            {"person_id": 2, "option": "no", "colour": "#222222"},
            {"person_id": 1, "option": "no", "colour": "#333333"},
        ],
        place=lambda record: (1.0, 2.0),
    )
    assert [n.id for n in joined.nodes] == [1, 2]
    assert joined.nodes[0].category == "no"
    assert joined.nodes[0].color == "#333333"
    assert (joined.nodes[0].x, joined.nodes[0].y) == (1.0, 2.0)


def test_reconcile_requires_an_id():
    with pytest.raises(ValueError):
        reconcile([], [{"option": "yes"}])


def test_destroy_stops_and_clears_visuals():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes"), ("b", "no")))
    chart.destroy()
    assert not chart.simulation.running
    assert renderer.ids() == []
    assert chart.nodes == []


def test_chart_uses_injected_config():
    renderer = SVGBubbleRenderer(600, 300)
    config = ChartConfig(width=600, height=300, bubble_radius=6, transition_duration=500)
    chart = BubbleChart(renderer, config=config, rng=random.Random(1))
    chart.set_nodes(_records(("a", "both")))

    assert chart.nodes[0].radius == 6
    assert math.isclose(chart.simulation.velocity_decay(), 0.2)
    circle = renderer.svg.select("circle[data-id='a']")
    assert circle.select_all("animate").attr("dur") == "500ms"
    assert chart.option_position(chart.nodes[0]) == 300


def test_create_when_ready_polls_until_target_exists():
    checks = iter([False, False, True])
    sleeps = []
    result = create_when_ready(
        lambda: "chart", lambda: next(checks), interval=0.01, sleep=sleeps.append
    )
    assert result == "chart"
    assert sleeps == [0.01, 0.01]


def test_create_when_ready_times_out():
    with pytest.raises(TimeoutError):
        create_when_ready(lambda: "chart", lambda: False, timeout=0, sleep=lambda _: None)


def test_set_nodes_without_restart_leaves_simulation_idle():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes")), restart=False)
    assert renderer.ids() == ["a"]
    assert not chart.simulation.running
    assert chart.settled is False


def test_chart_applies_configured_stroke_width():
    renderer = SVGBubbleRenderer(600, 300)
    config = ChartConfig(width=600, height=300, stroke_width=5)
    chart = BubbleChart(renderer, config=config, rng=random.Random(1))
    chart.set_nodes([{"personId": "a", "option": "yes", "colour": "#111111"}])

    circle = renderer.svg.select("circle[data-id='a']")
    assert circle.attr("stroke-width") == "5.0"


def test_create_when_ready_reads_interval_and_timeout_from_config():
    config = ChartConfig(ready_poll_interval=0.25, ready_timeout=0)
    sleeps = []
    with pytest.raises(TimeoutError):
        create_when_ready(lambda: "chart", lambda: False, config=config, sleep=sleeps.append)
    assert sleeps == []

    checks = iter([False, True])
    result = create_when_ready(
        lambda: "chart", lambda: next(checks), config=ChartConfig(ready_poll_interval=0.25),
        sleep=sleeps.append,
    )
    assert result == "chart"
    assert sleeps == [0.25]


def test_record_without_colour_is_rejected_before_changing_state():
    chart, renderer, _ = _chart()
    chart.set_nodes(_records(("a", "yes")))
    with pytest.raises(ValueError, match="colour"):
        chart.set_nodes([{"personId": "a", "option": "no", "colour": None}])

    node = _by_id(chart)["a"]
    assert node.category == "yes"
    assert node.color == "#1f77b4"
    assert renderer.svg.select("circle[data-id='a']").attr("fill") == "#1f77b4"


def test_discarded_chart_is_garbage_collected():
    chart, renderer, events = _chart()
    chart.set_nodes(_records(("a", "yes"), ("b", "no")))
    chart_ref = weakref.ref(chart)
    renderer_ref = weakref.ref(renderer)

    del chart, renderer, events
    gc.collect()

    assert chart_ref() is None
    assert renderer_ref() is None


def test_bubble_node_optional_fields_allow_none():
    node = BubbleNode(id="p1", category="yes")
    hints = typing.get_type_hints(BubbleNode)

    assert node.color is None and node.border_color is None and node.index is None
    assert hints["color"] == str | None
    assert hints["border_color"] == str | None
    assert hints["index"] == int | None
