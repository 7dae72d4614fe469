#!/usr/bin/python3

"""Route shapes to workers and turn what each worker gets into image tiles.

A Partitioner has two halves. Its map method runs on one input split and
generates (key, value) pairs; the driver groups the values of all splits by
key and calls the reduce method once per key, which returns a Tile.

DataPartitioner:
Every split accumulates into its own full-size FrequencyMap under a single
key. The reducer adds them all up and renders one image.

GridPartitioner and SkewedPartitioner:
Every shape's centroid is sent to each cell its stamp may touch. The reducer
of a cell renders just that cell's part of the image.

Which partitioner to use is decided by a partition plan (DataPlan, GridPlan
or SkewedPlan), see heatmap.driver.plan_partition.
"""

import random
from abc import ABCMeta, abstractmethod
from collections import namedtuple

from heatmap.common import Point, centroid, pixel_tile, to_pixel, union_all
from heatmap.frequency import FrequencyMap

# The world rectangle a tile shows, where its top left pixel goes in the
# full image, and the ARGB pixels themselves (indexed image[y, x]).
Tile = namedtuple('Tile', 'mbr x y image')

NULL_KEY = None


class Partitioner(metaclass=ABCMeta):
    """The base class for partitioners.

    settings is a heatmap.config.PlotSettings. rng is the random number
    generator used for adaptive sampling; each worker should pass its own.
    """

    def __init__(self, settings, rng=None):
        """Initialise a partitioner for one worker."""
        self.settings = settings
        self.random = rng if rng is not None else random.Random(settings.seed)

    @property
    @abstractmethod
    def extent(self):
        """The world rectangle covered by the full image."""
        return NotImplemented

    def centers(self, records):
        """Generate the centroids of all shapes that survive sampling.

        With adaptive sampling on, each Point is kept with a probability of
        settings.sample_ratio. Other shapes are never sampled away. Shapes
        without an MBR are skipped.
        """
        sample, ratio = self.settings.sample, self.settings.sample_ratio
        for record in records:
            for shape in record.shapes:
                if (sample and isinstance(shape, Point) and
                        self.random.random() > ratio):
                    continue
                center = centroid(shape)
                if center is not None:
                    yield center

    def new_map(self, width, height):
        """Allocate an empty FrequencyMap using the configured sigma."""
        return FrequencyMap(width, height, sigma=self.settings.sigma)

    def project(self, center):
        """Find the pixel of the full image a centroid falls on."""
        extent, s = self.extent, self.settings
        return (to_pixel(center.x, extent.x1, extent.width, s.width),
                to_pixel(center.y, extent.y1, extent.height, s.height))

    def render(self, fmap):
        """Colorize a FrequencyMap as configured."""
        s = self.settings
        return fmap.to_image(s.value_range, s.skip_zeros, s.gradient)

    def encode(self, value):
        """Prepare a map output value for sending to another process."""
        return value

    def decode(self, value):
        """Undo encode."""
        return value

    @abstractmethod
    def keys(self):
        """Return the keys that get a tile even if no shape is sent there."""
        return NotImplemented

    @abstractmethod
    def map(self, records):
        """Generate (key, value) pairs for the shapes in some records."""
        return NotImplemented

    @abstractmethod
    def reduce(self, key, values):
        """Turn all values collected for a key into a Tile."""
        return NotImplemented


class DataPartitioner(Partitioner):
    """Each worker draws its shapes on its own copy of the full image."""

    def __init__(self, settings, draw_mbr, rng=None):
        """Initialise a data partitioner drawing the area draw_mbr."""
        super().__init__(settings, rng)
        self.draw_mbr = draw_mbr

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return self.draw_mbr

    def map(self, records):
        """Stamp all shapes onto one FrequencyMap and emit it."""
        s = self.settings
        fmap = self.new_map(s.width, s.height)
        for center in self.centers(records):
            cx, cy = self.project(center)
            fmap.stamp(cx, cy, s.radius, s.smooth)
        yield NULL_KEY, fmap

    def encode(self, value):
        """Serialize a FrequencyMap to its wire format."""
        return value.to_bytes()

    def decode(self, value):
        """Read a FrequencyMap back from its wire format."""
        return FrequencyMap.from_bytes(value, sigma=self.settings.sigma)

    def keys(self):
        """There is only the one key."""
        return [NULL_KEY]

    def reduce(self, key, values):
        """Add up the maps of all workers and render the result."""
        s = self.settings
        maps = iter(values)
        combined = next(maps, None)
        combined = (self.new_map(s.width, s.height) if combined is None
                    else combined.clone())
        for fmap in maps:
            combined.combine(fmap)
        return Tile(self.draw_mbr, 0, 0, self.render(combined))


class CellPartitioner(Partitioner):
    """Common parts of the partitioners that give each worker one cell.

    Subclasses provide cell_keys, listing the cells a rectangle touches, and
    cell, returning the CellInfo for a key.
    """

    def __init__(self, settings, rng=None):
        """Work out the stamp radius in data units."""
        super().__init__(settings, rng)
        extent = self.extent
        self.radius_x = settings.radius * extent.width / settings.width
        self.radius_y = settings.radius * extent.height / settings.height

    @abstractmethod
    def cell_keys(self, rect):
        """Return the keys of all cells that rect touches."""
        return NotImplemented

    @abstractmethod
    def cell(self, key):
        """Return the CellInfo for a key."""
        return NotImplemented

    def tile(self, cell):
        """Return the (px1, py1, px2, py2) pixel tile of a cell."""
        s = self.settings
        return pixel_tile(cell, self.extent, s.width, s.height)

    def map(self, records):
        """Send each centroid to all cells its stamp might reach.

        Centroids whose stamp misses the query range are dropped.
        """
        query_range = self.settings.query_range
        for center in self.centers(records):
            reach = center.mbr.buffer(self.radius_x, self.radius_y)
            if query_range is not None and not reach.intersects(query_range):
                continue
            for key in self.cell_keys(reach):
                yield key, center

    def reduce(self, key, values):
        """Stamp the centroids sent to one cell and render its tile.

        Centroids are projected onto the full image and then shifted to the
        tile's origin, so tiles line up with a data partitioned image.
        """
        s = self.settings
        cell = self.cell(key)
        px1, py1, px2, py2 = self.tile(cell)
        fmap = self.new_map(px2 - px1, py2 - py1)
        for center in values:
            cx, cy = self.project(center)
            fmap.stamp(cx - px1, cy - py1, s.radius, s.smooth)
        return Tile(cell, px1, py1, self.render(fmap))


class GridPartitioner(CellPartitioner):
    """Split the image into the congruent cells of a GridInfo."""

    def __init__(self, settings, grid, rng=None):
        """Initialise a grid partitioner."""
        self.grid = grid
        super().__init__(settings, rng)

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return self.grid.mbr

    def cell_keys(self, rect):
        """Return the numbers of the grid cells rect overlaps."""
        return self.grid.overlapping_cell_numbers(rect)

    def keys(self):
        """Return the numbers of all grid cells."""
        return list(range(1, self.grid.cell_count + 1))

    def cell(self, key):
        """Return the grid cell with the given number."""
        return self.grid.cell(key)


class SkewedPartitioner(CellPartitioner):
    """Split the image into arbitrary cells, such as a spatial index's.

    The full image covers the union of all cells.
    """

    def __init__(self, settings, cells, rng=None):
        """Initialise a skewed partitioner over some CellInfos."""
        self.cells = {cell.cell_id: cell for cell in cells}
        if not self.cells:
            raise ValueError('Skewed partitioning needs at least one cell')
        self._extent = union_all(self.cells.values())
        super().__init__(settings, rng)

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return self._extent

    def cell_keys(self, rect):
        """Return the ids of the cells rect intersects."""
        return [cell_id for cell_id, cell in self.cells.items()
                if cell.intersects(rect)]

    def keys(self):
        """Return the ids of all cells."""
        return list(self.cells)

    def cell(self, key):
        """Return the cell with the given id."""
        try:
            return self.cells[key]
        except KeyError:
            raise KeyError('Cannot find cell: {}'.format(key)) from None


class DataPlan(namedtuple('DataPlan', 'mbr')):
    """Plan to use data partitioning over the rectangle mbr."""

    __slots__ = ()
    scheme = 'data'

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return self.mbr

    def partitioner(self, settings, rng=None):
        """Create this plan's partitioner."""
        return DataPartitioner(settings, self.mbr, rng)


class GridPlan(namedtuple('GridPlan', 'grid')):
    """Plan to use grid partitioning with the given GridInfo."""

    __slots__ = ()
    scheme = 'grid'

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return self.grid.mbr

    def partitioner(self, settings, rng=None):
        """Create this plan's partitioner."""
        return GridPartitioner(settings, self.grid, rng)


class SkewedPlan(namedtuple('SkewedPlan', 'cells')):
    """Plan to use skewed partitioning with a tuple of CellInfos."""

    __slots__ = ()
    scheme = 'skewed'

    @property
    def extent(self):
        """The world rectangle covered by the full image."""
        return union_all(self.cells)

    def partitioner(self, settings, rng=None):
        """Create this plan's partitioner."""
        return SkewedPartitioner(settings, self.cells, rng)
