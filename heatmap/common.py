#!/usr/bin/python3

"""Geometry primitives shared by the heatmap submodules.

Shapes are plain namedtuples. A Point projects to itself, a Rectangle to the
middle of its sides, and anything else that has an `mbr' attribute (see
OtherShape) to the center of that MBR.
"""

import math
from collections import namedtuple


class _Extent:
    """Methods for anything with x1, y1, x2 and y2 members."""

    __slots__ = ()

    @property
    def width(self):
        """The extent in x direction."""
        return self.x2 - self.x1

    @property
    def height(self):
        """The extent in y direction."""
        return self.y2 - self.y1

    @property
    def center(self):
        """The point halfway between the sides."""
        return Point((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def mbr(self):
        """A plain Rectangle with the same corners."""
        return Rectangle(self.x1, self.y1, self.x2, self.y2)

    def is_valid(self):
        """Return True if the extent has a positive width and height."""
        return self.width > 0 and self.height > 0

    def buffer(self, dx, dy):
        """Grow the extent by dx to the left and right, dy up and down."""
        return Rectangle(self.x1 - dx, self.y1 - dy,
                         self.x2 + dx, self.y2 + dy)

    def intersects(self, other):
        """Test whether two extents overlap or touch."""
        return (self.x2 >= other.x1 and other.x2 >= self.x1 and
                self.y2 >= other.y1 and other.y2 >= self.y1)

    def union(self, other):
        """Return the smallest Rectangle covering both extents."""
        return Rectangle(min(self.x1, other.x1), min(self.y1, other.y1),
                         max(self.x2, other.x2), max(self.y2, other.y2))


class Point(namedtuple('Point', 'x y')):
    """A point shape. Its MBR is degenerate."""

    __slots__ = ()

    @property
    def mbr(self):
        """Return the zero-area Rectangle at this point."""
        return Rectangle(self.x, self.y, self.x, self.y)


class Rectangle(_Extent, namedtuple('Rectangle', 'x1 y1 x2 y2')):
    """An axis-aligned rectangle in data coordinates."""

    __slots__ = ()


class CellInfo(_Extent, namedtuple('CellInfo', 'cell_id x1 y1 x2 y2')):
    """A partition cell: a rectangle with a stable integer id."""

    __slots__ = ()


# Any other shape that only knows its bounding box. mbr may be None.
OtherShape = namedtuple('OtherShape', 'mbr')

# A batch of shapes as read from the input. The batch MBR is informational.
Record = namedtuple('Record', 'mbr shapes')


def centroid(shape):
    """Return the Point a shape is drawn at, or None if it has no MBR."""
    if isinstance(shape, Point):
        return shape
    if isinstance(shape, Rectangle):
        return shape.center
    mbr = shape.mbr
    return None if mbr is None else mbr.center


def union_all(extents):
    """Return the union of some extents, or None if there are none."""
    result = None
    for extent in extents:
        result = extent.mbr if result is None else result.union(extent)
    return result


def round_half_up(value):
    """Round to the nearest integer, halves going up (not to even)."""
    return int(math.floor(value + 0.5))


def to_pixel(value, origin, span, pixels):
    """Project a data coordinate onto a pixel axis of the given size."""
    return round_half_up((value - origin) * pixels / span)


def pixel_tile(cell, extent, width, height):
    """Find the pixels of a width*height image of extent covered by cell.

    Min corners are rounded down and max corners up, so neighbouring tiles
    may share a boundary pixel. Returns (px1, py1, px2, py2), the max corner
    being exclusive.
    """
    return (
        int(math.floor((cell.x1 - extent.x1) * width / extent.width)),
        int(math.floor((cell.y1 - extent.y1) * height / extent.height)),
        int(math.ceil((cell.x2 - extent.x1) * width / extent.width)),
        int(math.ceil((cell.y2 - extent.y1) * height / extent.height)),
    )


class GridInfo(_Extent, namedtuple('GridInfo', 'x1 y1 x2 y2 columns rows')):
    """A uniform grid of columns*rows congruent cells over a rectangle.

    Cells are numbered row by row starting at 1, so the cell in column x and
    row y has the number y*columns + x + 1.
    """

    __slots__ = ()

    @classmethod
    def for_cells(cls, mbr, num_cells):
        """Lay num_cells cells over mbr, keeping each cell close to square.

        Out of all factor pairs columns*rows == num_cells, the one whose cell
        aspect ratio is nearest to 1 wins.
        """
        num_cells = max(1, int(num_cells))
        best = None
        for columns in range(1, num_cells + 1):
            if num_cells % columns:
                continue
            rows = num_cells // columns
            skew = abs(math.log((mbr.width / columns) /
                                (mbr.height / rows)))
            if best is None or skew < best[0]:
                best = skew, columns, rows
        _, columns, rows = best
        return cls(mbr.x1, mbr.y1, mbr.x2, mbr.y2, columns, rows)

    @property
    def cell_width(self):
        """The width of one grid cell."""
        return self.width / self.columns

    @property
    def cell_height(self):
        """The height of one grid cell."""
        return self.height / self.rows

    @property
    def cell_count(self):
        """The number of cells in the grid."""
        return self.columns * self.rows

    def overlapping_cells(self, rect):
        """Return (col1, row1, col2, row2) of the cells rect overlaps.

        The column and row ranges are half-open. If rect lies outside the
        grid, the ranges are empty.
        """
        if not self.intersects(rect):
            return 0, 0, 0, 0
        col1 = int(math.floor((rect.x1 - self.x1) / self.cell_width))
        row1 = int(math.floor((rect.y1 - self.y1) / self.cell_height))
        col2 = int(math.ceil((rect.x2 - self.x1) / self.cell_width))
        row2 = int(math.ceil((rect.y2 - self.y1) / self.cell_height))
        col1 = min(max(col1, 0), self.columns - 1)
        row1 = min(max(row1, 0), self.rows - 1)
        col2 = max(min(col2, self.columns), col1 + 1)
        row2 = max(min(row2, self.rows), row1 + 1)
        return col1, row1, col2, row2

    def overlapping_cell_numbers(self, rect):
        """Generate the numbers of all cells rect overlaps."""
        col1, row1, col2, row2 = self.overlapping_cells(rect)
        for x in range(col1, col2):
            for y in range(row1, row2):
                yield y * self.columns + x + 1

    def cell(self, number):
        """Return the CellInfo of the cell with the given number."""
        if not 1 <= number <= self.cell_count:
            raise KeyError('No cell {} in a {}x{} grid'
                           .format(number, self.columns, self.rows))
        x, y = (number - 1) % self.columns, (number - 1) // self.columns
        cw, ch = self.cell_width, self.cell_height
        return CellInfo(
            number,
            self.x1 + x * cw,
            self.y1 + y * ch,
            self.x2 if x == self.columns - 1 else self.x1 + (x + 1) * cw,
            self.y2 if y == self.rows - 1 else self.y1 + (y + 1) * ch,
        )

    def cells(self):
        """Generate all cells in numbering order."""
        return (self.cell(n) for n in range(1, self.cell_count + 1))
