#!/usr/bin/python3

"""Put heat map tiles together and write them to PNG files."""

import logging
import os
import sys
import tempfile
from array import array

import numpy as np
from png import Writer as PNGWriter

from heatmap.errors import ConfigurationError

log = logging.getLogger(__name__)


def compose(tiles, width, height):
    """Paste tiles onto a transparent width*height ARGB canvas.

    Each tile goes to its (x, y) pixel origin; parts outside the canvas are
    cut off. Where tiles overlap, later tiles win.
    """
    canvas = np.zeros((height, width), dtype=np.uint32)
    for tile in tiles:
        tile_height, tile_width = tile.image.shape
        x1, y1 = max(tile.x, 0), max(tile.y, 0)
        x2 = min(tile.x + tile_width, width)
        y2 = min(tile.y + tile_height, height)
        if x1 < x2 and y1 < y2:
            canvas[y1:y2, x1:x2] = tile.image[y1 - tile.y:y2 - tile.y,
                                              x1 - tile.x:x2 - tile.x]
    return canvas


def rgba_rows(image, vflip=False):
    """Transform an ARGB image into pixel rows to write to a PNG file."""
    for row in (image[::-1] if vflip else image):
        rgba = np.empty((len(row), 4), dtype=np.uint8)
        rgba[:, 0] = (row >> 16) & 0xFF
        rgba[:, 1] = (row >> 8) & 0xFF
        rgba[:, 2] = row & 0xFF
        rgba[:, 3] = (row >> 24) & 0xFF
        yield array('B', rgba.tobytes())


def write_png(outfile, image, vflip=False):
    """Write an ARGB image to a binary file object as an RGBA PNG."""
    height, width = image.shape
    writer = PNGWriter(width=width, height=height, alpha=True)
    writer.write(outfile, rgba_rows(image, vflip))


class ImageOutput:
    """Where the finished heat map goes.

    The image is written to a temporary file next to path and renamed into
    place once complete, so a failed run never leaves a partial image. A
    path of "-" writes to standard output instead.
    """

    def __init__(self, path, overwrite=False, vflip=False):
        """Initialise an output writing to path."""
        self.path = path
        self.overwrite = overwrite
        self.vflip = vflip

    def check(self):
        """Refuse to start a run that would overwrite an existing file."""
        if self.path != '-' and os.path.exists(self.path) and \
                not self.overwrite:
            raise ConfigurationError('Output {} already exists, pass '
                                     '-overwrite to replace it'
                                     .format(self.path))

    def commit(self, tiles, width, height):
        """Compose the tiles into one width*height image and write it."""
        image = compose(tiles, width, height)
        if self.path == '-':
            write_png(sys.stdout.buffer, image, self.vflip)
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.',
                                         suffix='.png.tmp')
        try:
            with os.fdopen(fd, 'wb') as outfile:
                write_png(outfile, image, self.vflip)
            os.replace(temp_path, self.path)
        except BaseException:
            os.unlink(temp_path)
            raise
        log.info('Wrote %dx%d image to %s', width, height, self.path)
