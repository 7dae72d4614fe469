#!/usr/bin/python3

"""Plot heat maps of large sets of shapes.

Every shape is reduced to its centroid, which is projected onto the image and
stamped into a FrequencyMap, either as a hard disk or as a Gaussian bell. The
frequencies are then colorized with a gradient ColorMap and written as a PNG.

Work is split over processes in one of three ways (see heatmap.partition):
data partitioning gives every worker a full-size map to add up later; grid
and skewed partitioning give every worker a tile of the image. See
heatmap.driver for how a plot is planned and run, and the plot script for
the command-line interface.
"""

from heatmap.colormap import (
    ColorGradient,
    ColorMap,
    GradientColorMap,
    HueGradient,
    ValueRange,
    make_gradient,
)
from heatmap.common import CellInfo, GridInfo, Point, Rectangle
from heatmap.config import PlotParams, PlotSettings
from heatmap.driver import PlotJob, create_job, plot_heatmap, prepare
from heatmap.errors import HeatmapError
from heatmap.frequency import FrequencyMap
from heatmap.output import ImageOutput
from heatmap.source import MemoryShapeSource, TextShapeSource

__all__ = [
    'FrequencyMap',
    'ColorMap',
    'GradientColorMap',
    'HueGradient',
    'ColorGradient',
    'ValueRange',
    'make_gradient',
    'Point',
    'Rectangle',
    'CellInfo',
    'GridInfo',
    'PlotParams',
    'PlotSettings',
    'PlotJob',
    'create_job',
    'plot_heatmap',
    'prepare',
    'HeatmapError',
    'ImageOutput',
    'MemoryShapeSource',
    'TextShapeSource',
]
