#!/usr/bin/python3

"""Read shapes to plot, and find out things about them.

A ShapeSource divides its input into splits that workers read
independently. Reading a split generates Records, batches of shapes.

TextShapeSource reads text files with one shape per line. Numbers may be
separated by commas or whitespace:
    point: x,y
    rect:  x1,y1,x2,y2
    poly:  x1,y1,x2,y2,x3,y3,...    (only the bounding box is used)
    ogc:   Well-Known Text, e.g. POLYGON ((0 0, 1 0, 1 1, 0 0))
Lines that cannot be parsed are skipped. The input may be a single file or a
directory; in a directory, files whose names start with "_" or "." are not
data. A directory may carry a global index in a file named _master.*, each
line of which describes one cell as cell_id,x1,y1,x2,y2.
"""

import logging
import math
import os
import random
import re
from abc import ABCMeta, abstractmethod
from collections import namedtuple
from glob import escape as glob_escape, glob
from itertools import chain

from heatmap.common import (CellInfo, GridInfo, OtherShape, Point, Record,
                            Rectangle, centroid, union_all)
from heatmap.errors import ConfigurationError, IndexUnavailable

log = logging.getLogger(__name__)

FileSummary = namedtuple('FileSummary', 'mbr record_count')
Split = namedtuple('Split', 'path start end')

SHAPE_TYPES = ('point', 'rect', 'poly', 'ogc')

_separator_re = re.compile(r'[,\s]+')
_number_re = re.compile(r'[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')
_wkt_re = re.compile(r'\b(?:MULTI)?(?:POINT|LINESTRING|POLYGON)\b|'
                     r'\bGEOMETRYCOLLECTION\b', re.IGNORECASE)


def _mbr_of_pairs(numbers):
    """Return the MBR of a flat list of x, y coordinates, or None."""
    xs, ys = numbers[0:len(numbers) - 1:2], numbers[1::2]
    if not xs:
        return None
    return Rectangle(min(xs), min(ys), max(xs), max(ys))


def parse_shape(line, shape_type):
    """Parse one line of text into a shape, or return None."""
    if shape_type == 'ogc':
        match = _wkt_re.search(line)
        if match is None:
            return None
        return OtherShape(_mbr_of_pairs(
            [float(n) for n in _number_re.findall(line, match.end())]))
    fields = [f for f in _separator_re.split(line.strip()) if f]
    try:
        if shape_type == 'point':
            return Point(float(fields[0]), float(fields[1]))
        if shape_type == 'rect':
            x1, y1, x2, y2 = map(float, fields[:4])
            return Rectangle(min(x1, x2), min(y1, y2),
                             max(x1, x2), max(y1, y2))
        return OtherShape(_mbr_of_pairs([float(f) for f in fields]))
    except (IndexError, ValueError):
        return None


def _batches(shapes, batch_size):
    """Group shapes into Records of at most batch_size shapes."""
    batch = []
    for shape in shapes:
        batch.append(shape)
        if len(batch) >= batch_size:
            yield Record(None, batch)
            batch = []
    if batch:
        yield Record(None, batch)


class ShapeSource(metaclass=ABCMeta):
    """The base class for shape sources.

    Sources are pickled and sent to worker processes, so they should hold
    only what is needed to find their data again.
    """

    batch_size = 1024

    @abstractmethod
    def splits(self, count):
        """Divide the input into about count independent splits."""
        return NotImplemented

    @abstractmethod
    def read_split(self, split):
        """Generate the Records of one split."""
        return NotImplemented

    def records(self):
        """Generate all Records of the input."""
        return chain.from_iterable(map(self.read_split, self.splits(1)))

    def shapes(self):
        """Generate all shapes of the input."""
        for record in self.records():
            yield from record.shapes

    def global_index(self):
        """Return the cells of a global index over the input, or None."""
        return None


class MemoryShapeSource(ShapeSource):
    """Shapes held in a list. index optionally gives global index cells."""

    def __init__(self, shapes, index=None, batch_size=None):
        """Initialise a source for a sequence of shapes."""
        self.shape_list = list(shapes)
        self.index = None if index is None else list(index)
        if batch_size is not None:
            self.batch_size = batch_size

    def splits(self, count):
        """Divide the shapes into count slices of about equal length."""
        count = max(1, count)
        n = len(self.shape_list)
        return [(i * n // count, (i + 1) * n // count) for i in range(count)]

    def read_split(self, split):
        """Generate the Records of one slice."""
        start, end = split
        return _batches(self.shape_list[start:end], self.batch_size)

    def global_index(self):
        """Return the cells given at construction, if any."""
        return self.index


class TextShapeSource(ShapeSource):
    """Read one shape per line from a text file or directory of files.

    Splits are byte ranges. A line belongs to the split its first byte is
    in, so every line is read exactly once however the file is divided.
    """

    def __init__(self, path, shape_type='point', batch_size=None):
        """Initialise a source for the file or directory at path."""
        shape_type = shape_type.lower()
        if shape_type == 'rectangle':
            shape_type = 'rect'
        elif shape_type == 'polygon':
            shape_type = 'poly'
        if shape_type not in SHAPE_TYPES:
            raise ConfigurationError('Unknown shape type {!r}, expected one '
                                     'of {}'.format(shape_type,
                                                    ', '.join(SHAPE_TYPES)))
        if not os.path.exists(path):
            raise FileNotFoundError('Input {} does not exist'.format(path))
        self.path = path
        self.shape_type = shape_type
        if batch_size is not None:
            self.batch_size = batch_size

    def files(self):
        """List the data files of the input."""
        if not os.path.isdir(self.path):
            return [self.path]
        return sorted(
            os.path.join(self.path, name) for name in os.listdir(self.path)
            if not name.startswith(('_', '.')) and
            os.path.isfile(os.path.join(self.path, name)))

    def splits(self, count):
        """Cut the input files into byte ranges of about equal size."""
        files = [(path, os.path.getsize(path)) for path in self.files()]
        total = sum(size for _, size in files)
        split_size = max(1, math.ceil(total / max(1, count)))
        splits = []
        for path, size in files:
            for start in range(0, size, split_size):
                splits.append(Split(path, start, min(start + split_size,
                                                      size)))
        return splits

    def _lines(self, split):
        with open(split.path, 'rb') as data_file:
            if split.start > 0:
                # The line around split.start belongs to the previous split.
                data_file.seek(split.start - 1)
                data_file.readline()
            while data_file.tell() < split.end:
                line = data_file.readline()
                if not line:
                    break
                yield line.decode('utf-8', errors='replace')

    def read_split(self, split):
        """Generate the Records of one byte range."""
        shapes = (parse_shape(line, self.shape_type)
                  for line in self._lines(split) if line.strip())
        return _batches((s for s in shapes if s is not None), self.batch_size)

    def global_index(self):
        """Read the global index of the input directory, if it has one."""
        return read_global_index(self.path)


def read_global_index(path):
    """Return the cells listed in a directory's _master.* file, or None.

    Raises IndexUnavailable if the index exists but cannot be read.
    """
    if not os.path.isdir(path):
        return None
    masters = sorted(glob(os.path.join(glob_escape(path), '_master.*')))
    if not masters:
        return None
    try:
        with open(masters[0], 'rt') as master:
            cells = []
            for line in master:
                if not line.strip():
                    continue
                cell_id, x1, y1, x2, y2 = line.split(',')[:5]
                cells.append(CellInfo(int(cell_id), float(x1), float(y1),
                                      float(x2), float(y2)))
    except (OSError, ValueError) as err:
        raise IndexUnavailable('Cannot read global index {}: {}'
                               .format(masters[0], err)) from err
    log.debug('Read %d cells from %s', len(cells), masters[0])
    return cells


def file_mbr(source):
    """Scan all shapes, returning their union MBR and number as a summary.

    The MBR is None if there are no shapes with an MBR.
    """
    mbr, count = None, 0
    for shape in source.shapes():
        count += 1
        shape_mbr = shape.mbr
        if shape_mbr is not None:
            mbr = shape_mbr if mbr is None else mbr.union(shape_mbr)
    return FileSummary(mbr, count)


def _sample_centers(source, size, rng):
    """Draw a uniform sample of at most size shape centroids."""
    sample, seen = [], 0
    for shape in source.shapes():
        center = centroid(shape)
        if center is None:
            continue
        seen += 1
        if len(sample) < size:
            sample.append(center)
        else:
            j = rng.randrange(seen)
            if j < size:
                sample[j] = center
    return sample


def _boundaries(values, parts, low, high):
    """Split sorted values into parts runs of equal count.

    Returns parts + 1 non-decreasing boundaries from low to high.
    """
    bounds = [low]
    for i in range(1, parts):
        value = values[i * len(values) // parts]
        bounds.append(min(max(value, bounds[-1]), high))
    bounds.append(high)
    return bounds


def pack_in_rectangles(source, mbr, cell_count, sample_size=10000,
                       seed=None):
    """Pack a sample of the input into cell_count cells that tile mbr.

    This is sort-tile-recursive packing: the sample is cut into vertical
    slices of equal count, and each slice into cells of equal count. Falls
    back to a uniform grid if the sample is smaller than cell_count.
    """
    cell_count = max(1, cell_count)
    sample = _sample_centers(source, sample_size, random.Random(seed))
    if len(sample) < cell_count:
        log.info('Sample of %d shapes too small, packing into a grid',
                 len(sample))
        return list(GridInfo.for_cells(mbr, cell_count).cells())
    columns = math.ceil(math.sqrt(cell_count))
    sample.sort()
    x_bounds = _boundaries([p.x for p in sample], columns, mbr.x1, mbr.x2)
    cells = []
    for column in range(columns):
        rows = cell_count // columns + (column < cell_count % columns)
        start = column * len(sample) // columns
        end = (column + 1) * len(sample) // columns
        ys = sorted(p.y for p in sample[start:end])
        if not ys:
            ys = [mbr.y1]
        y_bounds = _boundaries(ys, rows, mbr.y1, mbr.y2)
        for row in range(rows):
            cells.append(CellInfo(len(cells) + 1,
                                  x_bounds[column], y_bounds[row],
                                  x_bounds[column + 1], y_bounds[row + 1]))
    log.info('Packed %d shapes into %d cells covering %s', len(sample),
             len(cells), union_all(cells))
    return cells
