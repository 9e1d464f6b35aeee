"""Reporter module for chart rendering."""

from ecotrack.reporter.chart import AdoptionChart, nice_axis

__all__ = [
    "AdoptionChart",
    "nice_axis",
]
