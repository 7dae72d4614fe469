#!/usr/bin/python3

"""Test the heatmap.frequency module."""

import math
import unittest
from io import BytesIO
from struct import pack

import numpy as np

from heatmap.colormap import ColorGradient, ValueRange
from heatmap.errors import CodecMalformed, DimensionMismatch
from heatmap.frequency import FrequencyMap

BLUE, RED = 0xFF0000FF, 0xFFFF0000


class StampTest(unittest.TestCase):
    """Test stamping disks and Gaussian bells."""

    def test_disk_mass(self):
        """Test how many pixels a disk stamp covers."""
        for radius, mass in ((0, 0), (1, 4), (2, 12), (3, 32)):
            with self.subTest(radius=radius):
                fmap = FrequencyMap(20, 20)
                fmap.stamp_disk(10, 10, radius)
                self.assertEqual(fmap.frequency.sum(), mass)
                self.assertLessEqual(fmap.frequency.max(), 1)

    def test_disk_is_symmetric(self):
        """Test that the disk mask is symmetric about both axes."""
        disk = FrequencyMap().disk(5)
        self.assertEqual(disk.shape, (10, 10))
        self.assertTrue(np.array_equal(disk, disk[::-1]))
        self.assertTrue(np.array_equal(disk, disk[:, ::-1]))
        self.assertTrue(np.array_equal(disk, disk.T))

    def test_gaussian_peak(self):
        """Test the center and edge values of a Gaussian stamp."""
        fmap = FrequencyMap(30, 30)
        fmap.stamp_gaussian(15, 15, 5)
        self.assertAlmostEqual(float(fmap.frequency[15, 15]), 1.0)
        self.assertAlmostEqual(float(fmap.frequency[20, 15]),
                               math.exp(-25 / 128), places=6)
        self.assertAlmostEqual(float(fmap.frequency[15, 10]),
                               math.exp(-25 / 128), places=6)
        self.assertEqual(float(fmap.frequency[21, 15]), 0)
        self.assertEqual(float(fmap.value_range().max), 1.0)

    def test_custom_sigma(self):
        """Test that sigma shapes the Gaussian kernel."""
        kernel = FrequencyMap(sigma=2.0).gaussian_kernel(2)
        self.assertEqual(kernel.shape, (5, 5))
        self.assertAlmostEqual(float(kernel[0, 2]), math.exp(-4 / 8),
                               places=6)

    def test_stamp_is_clipped(self):
        """Test stamping next to and outside the map's edges."""
        fmap = FrequencyMap(10, 10)
        fmap.stamp_disk(0, 0, 3)
        self.assertEqual(fmap.frequency.sum(), 8)
        fmap.stamp_disk(-10, -10, 3)
        fmap.stamp_gaussian(100, 5, 3)
        self.assertEqual(fmap.frequency.sum(), 8)

    def test_negative_radius(self):
        """Test that a negative radius is refused."""
        fmap = FrequencyMap(5, 5)
        for smooth in (False, True):
            with self.subTest(smooth=smooth):
                with self.assertRaises(ValueError):
                    fmap.stamp(2, 2, -1, smooth)

    def test_negative_size(self):
        """Test that maps cannot have a negative size."""
        with self.assertRaises(ValueError):
            FrequencyMap(-1, 5)


class CombineTest(unittest.TestCase):
    """Test adding up frequency maps."""

    def test_combine(self):
        """Test that combining adds cell by cell."""
        first, second = FrequencyMap(10, 10), FrequencyMap(10, 10)
        first.stamp_disk(5, 5, 2)
        second.stamp_disk(5, 5, 2)
        second.stamp_disk(1, 1, 1)
        total = first.clone().combine(second)
        self.assertEqual(total.frequency.sum(),
                         first.frequency.sum() + second.frequency.sum())
        self.assertEqual(float(total.frequency[5, 5]), 2)
        self.assertEqual(float(first.frequency[5, 5]), 1)

    def test_dimension_mismatch(self):
        """Test that maps of different sizes cannot be combined."""
        with self.assertRaises(DimensionMismatch):
            FrequencyMap(10, 10).combine(FrequencyMap(10, 11))
        with self.assertRaises(ValueError):
            FrequencyMap(3, 4).combine(FrequencyMap(4, 3))


class SerializationTest(unittest.TestCase):
    """Test the run-length encoded wire format."""

    def test_all_zero_map(self):
        """Test that an empty map encodes one zero run per column."""
        data = FrequencyMap(3, 4).to_bytes()
        self.assertEqual(len(data), 8 + 8 * 3)
        self.assertEqual(data[:8], pack('>ii', 3, 4))
        self.assertEqual(data[8:16], pack('>ff', 4, 0))

    def test_singletons_are_negated(self):
        """Test the encoding of a column with single cells and a run."""
        fmap = FrequencyMap(1, 4)
        fmap.frequency[0] = [2.5, 0, 1, 1]
        self.assertEqual(fmap.to_bytes()[8:],
                         pack('>fffff', -2.5, 1, 0, 2, 1))

    def test_round_trip(self):
        """Test that a map survives serialization unchanged."""
        for smooth in (False, True):
            with self.subTest(smooth=smooth):
                fmap = FrequencyMap(40, 30)
                for x, y in ((3, 4), (20, 20), (21, 20), (39, 0)):
                    fmap.stamp(x, y, 4, smooth)
                copy = FrequencyMap.from_bytes(fmap.to_bytes())
                self.assertEqual(copy, fmap)
                self.assertEqual((copy.width, copy.height), (40, 30))

    def test_deserialize_reallocates(self):
        """Test reading a map of another size into an existing map."""
        fmap = FrequencyMap(3, 5)
        fmap.frequency[1, 2] = 7
        target = FrequencyMap(2, 2)
        target.frequency[:] = 9
        target.deserialize(BytesIO(fmap.to_bytes()))
        self.assertEqual((target.width, target.height), (3, 5))
        self.assertEqual(target, fmap)

    def test_deserialize_overwrites(self):
        """Test reading a map of the same size replaces its contents."""
        target = FrequencyMap(2, 2)
        target.frequency[:] = 9
        target.deserialize(BytesIO(FrequencyMap(2, 2).to_bytes()))
        self.assertEqual(target.frequency.sum(), 0)

    def test_run_overflow(self):
        """Test that runs longer than the column are rejected."""
        data = pack('>ii', 1, 10) + pack('>ffff', 6, 1, 6, 1)
        with self.assertRaises(CodecMalformed):
            FrequencyMap.from_bytes(data)

    def test_truncated_stream(self):
        """Test that a stream ending early is rejected."""
        data = FrequencyMap(4, 4).to_bytes()
        for cut in (3, 8, 12, len(data) - 1):
            with self.subTest(cut=cut):
                with self.assertRaises(CodecMalformed):
                    FrequencyMap.from_bytes(data[:cut])

    def test_trailing_bytes(self):
        """Test that extra bytes after a map are rejected."""
        with self.assertRaises(CodecMalformed):
            FrequencyMap.from_bytes(FrequencyMap(1, 1).to_bytes() + b'\0')

    def test_invalid_run_values(self):
        """Test that fractional counts and negative run values fail."""
        for run in ((1.5, 1), (2, -1), (2, float('nan'))):
            with self.subTest(run=run):
                data = pack('>ii', 1, 2) + pack('>ff', *run)
                with self.assertRaises(CodecMalformed):
                    FrequencyMap.from_bytes(data)


class ImageTest(unittest.TestCase):
    """Test colorizing frequency maps."""

    def test_empty_map_is_solid_color1(self):
        """Test that a map without shapes has the color of its minimum."""
        image = FrequencyMap(5, 3).to_image()
        self.assertEqual(image.shape, (3, 5))
        self.assertTrue(np.all(image == BLUE))

    def test_image_orientation(self):
        """Test that the image is indexed by row, then column."""
        fmap = FrequencyMap(4, 2)
        fmap.frequency[3, 1] = 5
        image = fmap.to_image()
        self.assertEqual(image.shape, (2, 4))
        self.assertEqual(int(image[1, 3]), RED)
        self.assertEqual(int(image[0, 0]), BLUE)

    def test_value_range_clamps(self):
        """Test colorizing with a fixed value range."""
        fmap = FrequencyMap(3, 1)
        fmap.frequency[:, 0] = [0, 5, 10]
        image = fmap.to_image(ValueRange(0, 5), gradient=ColorGradient())
        self.assertEqual([int(c) for c in image[0]], [BLUE, RED, RED])

    def test_skip_zeros(self):
        """Test that pixels at the minimum become transparent."""
        fmap = FrequencyMap(10, 10)
        fmap.stamp_disk(5, 5, 2)
        image = fmap.to_image(skip_zeros=True)
        self.assertEqual(int(image[0, 0]), 0)
        self.assertEqual(int(image[5, 5]), RED)
        self.assertEqual(np.count_nonzero(image), 12)


if __name__ == '__main__':
    unittest.main()
