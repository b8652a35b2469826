from d3_svg_bubbles.svg import SVG_NS, MiniD3SVG, Selection, SVGBubbleRenderer, darker
from d3_svg_bubbles.force import (
    ForceManyBody,
    ForceSimulation,
    ForceX,
    ForceY,
    force_many_body,
    force_simulation,
    force_x,
    force_y,
)
from d3_svg_bubbles.chart import (
    BubbleChart,
    BubbleNode,
    ChartEvents,
    Reconciliation,
    cluster_targets,
    create_when_ready,
    reconcile,
)
from d3_svg_bubbles.config import ChartConfig, load_config
from d3_svg_bubbles.api import VotesClient, vote_event_records

__all__ = [
    "SVG_NS",
    "MiniD3SVG",
    "Selection",
    "SVGBubbleRenderer",
    "darker",
    "ForceManyBody",
    "ForceSimulation",
    "ForceX",
    "ForceY",
    "force_many_body",
    "force_simulation",
    "force_x",
    "force_y",
    "BubbleChart",
    "BubbleNode",
    "ChartEvents",
    "Reconciliation",
    "cluster_targets",
    "create_when_ready",
    "reconcile",
    "ChartConfig",
    "load_config",
    "VotesClient",
    "vote_event_records",
]
