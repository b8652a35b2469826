"""Example fetching the latest vote from the vote API and rendering it as bubbles."""

import logging
import sys

from d3_svg_bubbles import BubbleChart, SVGBubbleRenderer, VotesClient, vote_event_records
from d3_svg_bubbles.config import ChartConfig, load_config
from d3_svg_bubbles.logging_config import setup_logging

PARTY_COLOURS = {
    "Labour": "#d62728",
    "Conservative": "#1f77b4",
    "Liberal Democrat": "#ff7f0e",
    "Green": "#2ca02c",
}


def main():
    setup_logging(logging.DEBUG)
    config = load_config(sys.argv[1]) if len(sys.argv) > 1 else ChartConfig()

    with VotesClient(config.api_base_url, timeout=config.api_timeout) as client:
        data = client.initial_data()
        latest = data["latestVote"]
        events = latest.get("voteEvents") or client.vote_events(latest["id"])

    records = vote_event_records(events, colour_for=lambda row: PARTY_COLOURS.get(row.get("party")))
    renderer = SVGBubbleRenderer(width=config.width, height=config.height, bg="#fff")
    chart = BubbleChart(renderer, config=config)
    chart.set_nodes(records)
    chart.run()
    renderer.save(f"vote_{latest['id']}.svg")


if __name__ == "__main__":
    main()
