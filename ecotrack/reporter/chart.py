"""Adoption chart: source-file and project counts over time as a dual-axis SVG."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ecotrack.utils.atomic import atomic_write_text
from ecotrack.utils.logging import get_logger

logger = get_logger("reporter.chart")

TEMPLATES_DIR = Path(__file__).parent / "templates"


@dataclass
class Axis:
    """A value axis scaled onto the plot height."""

    maximum: int
    ticks: list[int]


def nice_axis(max_value: int, tick_count: int = 5) -> Axis:
    """Round ``max_value`` up to a 1/2/5 x 10^n step multiple and list the ticks."""
    if max_value <= 0:
        return Axis(maximum=1, ticks=[0, 1])

    raw_step = max_value / tick_count
    magnitude = 10 ** math.floor(math.log10(raw_step))
    step = magnitude
    for multiplier in (1, 2, 5, 10):
        step = multiplier * magnitude
        if step >= raw_step:
            break
    step = max(int(step), 1)
    maximum = step * math.ceil(max_value / step)
    return Axis(maximum=maximum, ticks=list(range(0, maximum + 1, step)))


class AdoptionChart:
    """Renders the adoption series with sources on the left axis and projects on the right."""

    def __init__(
        self,
        width: int = 1200,
        height: int = 600,
        margin: int = 70,
        title: str = "Ecosystem adoption",
    ) -> None:
        self.width = width
        self.height = height
        self.margin = margin
        self.title = title

        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml", "svg", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, series: Sequence[tuple[datetime, int, int]]) -> str:
        """
        Render an ordered series of (date, source count, project count).

        Returns:
            SVG document text
        """
        plot_left = self.margin
        plot_right = self.width - self.margin
        plot_top = self.margin
        plot_bottom = self.height - self.margin

        source_axis = nice_axis(max((s for _, s, _ in series), default=0))
        project_axis = nice_axis(max((p for _, _, p in series), default=0))

        if series:
            start = series[0][0].timestamp()
            span = series[-1][0].timestamp() - start
        else:
            start, span = 0.0, 0.0

        def x_of(date: datetime) -> float:
            if span <= 0:
                return (plot_left + plot_right) / 2
            return plot_left + (date.timestamp() - start) / span * (plot_right - plot_left)

        def y_of(value: int, axis: Axis) -> float:
            return plot_bottom - value / axis.maximum * (plot_bottom - plot_top)

        source_points = [(round(x_of(d), 1), round(y_of(s, source_axis), 1)) for d, s, _ in series]
        project_points = [(round(x_of(d), 1), round(y_of(p, project_axis), 1)) for d, _, p in series]

        date_labels = []
        if series:
            indices = sorted({0, len(series) // 2, len(series) - 1})
            date_labels = [
                (round(x_of(series[i][0]), 1), series[i][0].strftime("%Y-%m-%d"))
                for i in indices
            ]

        template = self.env.get_template("adoption.svg.j2")
        return template.render(
            title=self.title,
            width=self.width,
            height=self.height,
            plot_left=plot_left,
            plot_right=plot_right,
            plot_top=plot_top,
            plot_bottom=plot_bottom,
            source_ticks=[(t, round(y_of(t, source_axis), 1)) for t in source_axis.ticks],
            project_ticks=[(t, round(y_of(t, project_axis), 1)) for t in project_axis.ticks],
            source_points=source_points,
            project_points=project_points,
            date_labels=date_labels,
        )

    def write(self, series: Sequence[tuple[datetime, int, int]], path: Path) -> Path:
        """Render and atomically write the chart to ``path``."""
        path = Path(path)
        atomic_write_text(path, self.render(series))
        logger.info("chart_written", path=str(path), points=len(series))
        return path
