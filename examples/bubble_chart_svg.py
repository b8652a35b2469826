"""Minimal example settling a bubble chart headlessly and saving the SVG."""

import random

from d3_svg_bubbles import BubbleChart, ChartEvents, SVGBubbleRenderer
from d3_svg_bubbles.logging_config import setup_logging


class PrintEvents(ChartEvents):
    def chart_settled(self):
        print("chart settled")


def main():
    setup_logging()
    rng = random.Random(1)
    renderer = SVGBubbleRenderer(width=1000, height=800, bg="#f8f8f8")
    chart = BubbleChart(renderer, events=PrintEvents(), rng=rng)

    options = ["yes", "no", "absent", "both"]
    colours = ["#1f77b4", "#d62728", "#2ca02c", "#ff7f0e"]
    records = [
        {"personId": i, "option": rng.choice(options), "colour": rng.choice(colours)}
        for i in range(120)
    ]
    chart.set_nodes(records)
    chart.run()
    renderer.save("bubble_chart.svg")

    # Half the people switch sides; the survivors keep their place.
    for record in records[::2]:
        record["option"] = "no" if record["option"] == "yes" else "yes"
    chart.set_nodes(records[:100])
    chart.run()
    renderer.save("bubble_chart_updated.svg")


if __name__ == "__main__":
    main()
