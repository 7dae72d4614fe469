#!/usr/bin/python3

"""Accumulate per-pixel frequencies and turn them into heat map images.

A FrequencyMap is a float32 grid indexed as frequency[x, y]. Shapes are
added by stamping a kernel around their projected center: either a hard
disk, adding 1 to every pixel inside it, or a Gaussian bell. Maps of equal
size can be combined, and they serialize to a compact run-length encoded
form so that workers can ship them around cheaply.

Wire format (all big-endian):

    int32 width
    int32 height
    width times, one column each, until height cells are filled:
        float32 v
        v <= 0:  one cell with value -v
        v > 0:   float32 u follows; v cells with value u
"""

import logging
import math
from io import BytesIO
from struct import Struct

import numpy as np

from heatmap.colormap import HueGradient, ValueRange
from heatmap.errors import CodecMalformed, DimensionMismatch

log = logging.getLogger(__name__)

DEFAULT_SIGMA = 8.0

_header_struct = Struct('>ii')
_float_struct = Struct('>f')


def _read_exact(source, size):
    """Read exactly size bytes from source or raise CodecMalformed."""
    data = source.read(size)
    if len(data) != size:
        raise CodecMalformed('Frequency map stream ended early')
    return data


def _encode_column(column):
    """Run-length encode one column, returning big-endian float32 bytes."""
    if not len(column):
        return b''
    starts = np.flatnonzero(np.concatenate(
        ([True], column[1:] != column[:-1])))
    lengths = np.diff(np.append(starts, len(column)))
    encoded = []
    for length, value in zip(lengths.tolist(), column[starts].tolist()):
        # -0.0 would read back as a singleton, so zero always gets a count
        if length == 1 and value != 0:
            encoded.append(-value)
        else:
            encoded.extend((length, value))
    return np.array(encoded, dtype='>f4').tobytes()


class FrequencyMap:
    """A width*height grid of float32 frequencies, initially all zero.

    Disk masks and Gaussian kernels are computed on first use for each
    radius and cached on the instance. sigma is the standard deviation of
    the Gaussian kernels.
    """

    def __init__(self, width=0, height=0, sigma=DEFAULT_SIGMA):
        """Allocate an empty map."""
        if width < 0 or height < 0:
            raise ValueError('Negative frequency map size {}x{}'
                             .format(width, height))
        self.frequency = np.zeros((width, height), dtype=np.float32)
        self.sigma = sigma
        self._disks = {}
        self._kernels = {}

    @property
    def width(self):
        """The number of columns."""
        return self.frequency.shape[0]

    @property
    def height(self):
        """The number of cells in each column."""
        return self.frequency.shape[1]

    def __repr__(self):
        return 'FrequencyMap({}x{})'.format(self.width, self.height)

    def __eq__(self, other):
        if not isinstance(other, FrequencyMap):
            return NotImplemented
        return np.array_equal(self.frequency, other.frequency)

    __hash__ = None

    def clone(self):
        """Return a deep copy of this map."""
        copy = FrequencyMap(sigma=self.sigma)
        copy.frequency = self.frequency.copy()
        return copy

    def disk(self, radius):
        """Return the 2r*2r boolean disk mask for the given radius.

        A pixel is filled if its center lies inside the disk inscribed in
        the square.
        """
        if radius not in self._disks:
            offsets = np.arange(2 * radius) + 0.5 - radius
            self._disks[radius] = (offsets[:, np.newaxis] ** 2 +
                                   offsets[np.newaxis, :] ** 2) < radius ** 2
        return self._disks[radius]

    def gaussian_kernel(self, radius):
        """Return the (2r+1)*(2r+1) Gaussian kernel for the given radius.

        The kernel is not normalised: its center element is 1.
        """
        if radius not in self._kernels:
            offsets = np.arange(2 * radius + 1) - radius
            squares = (offsets[:, np.newaxis] ** 2 +
                       offsets[np.newaxis, :] ** 2)
            self._kernels[radius] = np.exp(
                -squares / (2 * self.sigma ** 2)).astype(np.float32)
        return self._kernels[radius]

    def _stamp(self, kernel, cx, cy, radius):
        """Add kernel to the grid, its [radius, radius] element at (cx, cy).

        Parts of the kernel outside the grid are dropped.
        """
        x0, y0 = cx - radius, cy - radius
        kernel_width, kernel_height = kernel.shape
        gx1, gy1 = max(x0, 0), max(y0, 0)
        gx2 = min(x0 + kernel_width, self.width)
        gy2 = min(y0 + kernel_height, self.height)
        if gx1 >= gx2 or gy1 >= gy2:
            return
        self.frequency[gx1:gx2, gy1:gy2] += \
            kernel[gx1 - x0:gx2 - x0, gy1 - y0:gy2 - y0]

    def stamp_disk(self, cx, cy, radius):
        """Add 1 to every pixel of the disk of the given radius at (cx, cy)."""
        if radius < 0:
            raise ValueError('Negative radius {}'.format(radius))
        self._stamp(self.disk(radius), cx, cy, radius)

    def stamp_gaussian(self, cx, cy, radius):
        """Add a Gaussian bell over the (2r+1)*(2r+1) square at (cx, cy)."""
        if radius < 0:
            raise ValueError('Negative radius {}'.format(radius))
        self._stamp(self.gaussian_kernel(radius), cx, cy, radius)

    def stamp(self, cx, cy, radius, smooth=False):
        """Stamp a Gaussian bell if smooth is set, otherwise a hard disk."""
        if smooth:
            self.stamp_gaussian(cx, cy, radius)
        else:
            self.stamp_disk(cx, cy, radius)

    def combine(self, other):
        """Add another map of the same size to this one, cell by cell."""
        if self.frequency.shape != other.frequency.shape:
            raise DimensionMismatch(
                'Incompatible frequency map sizes {!r}, {!r}'
                .format(self, other))
        self.frequency += other.frequency
        return self

    def value_range(self):
        """Return the smallest and largest frequency as a ValueRange."""
        if not self.frequency.size:
            return ValueRange(0.0, 0.0)
        return ValueRange(float(self.frequency.min()),
                          float(self.frequency.max()))

    def to_image(self, value_range=None, skip_zeros=False, gradient=None):
        """Colorize the map, returning a height*width array of ARGB ints.

        The image is indexed as image[y, x]. Without a value_range the map's
        own range is used; without a gradient the default blue-to-red hue
        gradient. If skip_zeros is set, pixels at or below the range's
        minimum are left fully transparent.
        """
        if value_range is None:
            value_range = self.value_range()
        if gradient is None:
            gradient = HueGradient()
        log.info('Using the value range %s..%s', *value_range)
        values = self.frequency.T
        image = gradient.colorize(values, value_range)
        if skip_zeros:
            image[values <= value_range.min] = 0
        return image

    def serialize(self, sink):
        """Write the map to a binary file object in the wire format."""
        sink.write(_header_struct.pack(self.width, self.height))
        for column in self.frequency:
            sink.write(_encode_column(column))

    def deserialize(self, source):
        """Replace this map's contents with a map read from source.

        The grid is reallocated if the stream declares a different size.
        Raises CodecMalformed if the stream is inconsistent.
        """
        width, height = _header_struct.unpack(
            _read_exact(source, _header_struct.size))
        if width < 0 or height < 0:
            raise CodecMalformed('Negative frequency map size {}x{}'
                                 .format(width, height))
        if (width, height) != (self.width, self.height):
            self.frequency = np.zeros((width, height), dtype=np.float32)
        for x in range(width):
            column, y = self.frequency[x], 0
            while y < height:
                v, = _float_struct.unpack(_read_exact(source, 4))
                if not math.isfinite(v):
                    raise CodecMalformed('Non-finite float in column {}'
                                         .format(x))
                if v <= 0:
                    column[y] = -v
                    y += 1
                    continue
                value, = _float_struct.unpack(_read_exact(source, 4))
                count = int(v)
                if count != v or y + count > height:
                    raise CodecMalformed(
                        'Run of {} at row {} overflows column {} of height {}'
                        .format(v, y, x, height))
                if not math.isfinite(value) or value < 0:
                    raise CodecMalformed('Invalid run value {}'.format(value))
                column[y:y + count] = value
                y += count
        return self

    def to_bytes(self):
        """Return the serialized map as bytes."""
        buffer = BytesIO()
        self.serialize(buffer)
        return buffer.getvalue()

    @classmethod
    def from_bytes(cls, data, sigma=DEFAULT_SIGMA):
        """Build a map from bytes produced by to_bytes."""
        source = BytesIO(data)
        fmap = cls(sigma=sigma).deserialize(source)
        if source.tell() != len(data):
            raise CodecMalformed('{} trailing bytes after frequency map'
                                 .format(len(data) - source.tell()))
        return fmap
