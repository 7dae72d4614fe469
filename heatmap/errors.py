#!/usr/bin/python3

"""Exceptions raised by the heatmap package.

Everything raised on purpose derives from HeatmapError. Errors caused by bad
values also derive from ValueError so callers that only know about the
builtin exceptions can still catch them.
"""


class HeatmapError(Exception):
    """Base class for all heat map plotting errors."""


class ConfigurationError(HeatmapError, ValueError):
    """The run was configured with invalid parameters."""


class UnknownPartition(ConfigurationError):
    """The requested partitioning scheme does not exist."""

    def __init__(self, scheme):
        super().__init__('Unknown partition scheme {!r}'.format(scheme))
        self.scheme = scheme


class MissingMBR(ConfigurationError):
    """Neither a query range nor any input shape defines the plot area."""


class ImageTooLarge(ConfigurationError):
    """The requested image has more pixels than can be allocated."""


class InvalidValueRange(ConfigurationError):
    """A value range could not be parsed or has min > max."""


class DimensionMismatch(HeatmapError, ValueError):
    """Two frequency maps of different sizes were combined."""


class CodecMalformed(HeatmapError, ValueError):
    """A serialized frequency map does not match its declared size."""


class IndexUnavailable(HeatmapError, OSError):
    """A global index exists but could not be read."""


class PlotCancelled(HeatmapError):
    """A running plot job was cancelled before it finished."""
