#!/usr/bin/python3

"""Test the heatmap.source module."""

import os
import random
import tempfile
import unittest

from heatmap.common import CellInfo, OtherShape, Point, Rectangle, union_all
from heatmap.errors import ConfigurationError, IndexUnavailable
from heatmap.source import (MemoryShapeSource, TextShapeSource, file_mbr,
                            pack_in_rectangles, parse_shape)


def random_points(count, seed):
    """Return count random points in the square (0, 0, 100, 100)."""
    rng = random.Random(seed)
    return [Point(rng.uniform(0, 100), rng.uniform(0, 100))
            for _ in range(count)]


class ParseShapeTest(unittest.TestCase):
    """Test parsing lines of text into shapes."""

    def test_points(self):
        """Test point lines with various separators."""
        for line in ('1.5,2', '1.5, 2', '1.5 2\n', ' 1.5\t2 ', '1.5,2,extra'):
            with self.subTest(line=line):
                self.assertEqual(parse_shape(line, 'point'), Point(1.5, 2))

    def test_rectangles(self):
        """Test that rectangle corners are put in order."""
        self.assertEqual(parse_shape('4,4,0,-1', 'rect'),
                         Rectangle(0, -1, 4, 4))

    def test_polygons(self):
        """Test that polygons are reduced to their MBR."""
        self.assertEqual(parse_shape('0,0,4,0,2,3', 'poly'),
                         OtherShape(Rectangle(0, 0, 4, 3)))

    def test_wkt(self):
        """Test Well-Known Text shapes."""
        self.assertEqual(
            parse_shape('7\tPOLYGON ((0 0, 4 0, 4 2, 0 0))', 'ogc'),
            OtherShape(Rectangle(0, 0, 4, 2)))
        self.assertEqual(parse_shape('point (3 -1e1)', 'ogc'),
                         OtherShape(Rectangle(3, -10, 3, -10)))
        self.assertIsNone(parse_shape('CIRCLE (1 1)', 'ogc'))

    def test_unparsable_lines(self):
        """Test that lines that are not shapes give None."""
        for line, shape_type in (('x,y', 'point'), ('1', 'point'),
                                 ('1,2,3', 'rect'), ('', 'point')):
            with self.subTest(line=line, shape_type=shape_type):
                self.assertIsNone(parse_shape(line, shape_type))


class MemoryShapeSourceTest(unittest.TestCase):
    """Test the in-memory shape source."""

    def test_splits_cover_all_shapes(self):
        """Test that every shape is in exactly one split."""
        points = random_points(101, 1)
        source = MemoryShapeSource(points, batch_size=7)
        for count in (1, 2, 5, 200):
            with self.subTest(count=count):
                read = [shape for split in source.splits(count)
                        for record in source.read_split(split)
                        for shape in record.shapes]
                self.assertEqual(read, points)

    def test_file_mbr(self):
        """Test the summary of a source."""
        source = MemoryShapeSource([Point(1, 5), Rectangle(-2, 0, 3, 1),
                                    OtherShape(None)])
        summary = file_mbr(source)
        self.assertEqual(summary.mbr, Rectangle(-2, 0, 3, 5))
        self.assertEqual(summary.record_count, 3)
        self.assertIsNone(file_mbr(MemoryShapeSource([])).mbr)


class TextShapeSourceTest(unittest.TestCase):
    """Test reading shapes from text files."""

    def setUp(self):
        """Create a temporary directory for input files."""
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)

    def write(self, name, text):
        """Write text to a file in the temporary directory."""
        path = os.path.join(self.tempdir.name, name)
        with open(path, 'wt') as data_file:
            data_file.write(text)
        return path

    def test_splits_read_every_line_once(self):
        """Test that byte range splits neither lose nor repeat lines."""
        rng = random.Random(3)
        points = [Point(round(rng.uniform(-1000, 1000), rng.randrange(6)),
                      float(i)) for i in range(500)]
        path = self.write('points.csv', ''.join(
            '{},{}\n'.format(*p) for p in points))
        source = TextShapeSource(path, 'point', batch_size=16)
        for count in (1, 2, 3, 7, 64, 5000):
            with self.subTest(count=count):
                read = [shape for split in source.splits(count)
                        for record in source.read_split(split)
                        for shape in record.shapes]
                self.assertEqual(read, points)

    def test_skips_bad_lines(self):
        """Test that blank and unparsable lines are skipped."""
        path = self.write('points.txt', '1,1\n\nnot a point\n2,2')
        source = TextShapeSource(path)
        self.assertEqual(list(source.shapes()), [Point(1, 1), Point(2, 2)])

    def test_directory(self):
        """Test reading a directory, skipping hidden and index files."""
        self.write('part-00000', '1,1\n')
        self.write('part-00001', '2,2\n3,3\n')
        self.write('_master.grid', '1,0,0,10,10\n')
        self.write('.part-00000.crc', 'garbage\n')
        source = TextShapeSource(self.tempdir.name, 'point')
        self.assertEqual(len(source.files()), 2)
        self.assertEqual(list(source.shapes()),
                         [Point(1, 1), Point(2, 2), Point(3, 3)])

    def test_global_index(self):
        """Test reading the cells of a global index."""
        self.write('part-00000', '1,1\n')
        self.write('_master.str', '1,0,0,50,100\n2,50,0,100,100,extra\n\n')
        source = TextShapeSource(self.tempdir.name, 'point')
        self.assertEqual(source.global_index(),
                         [CellInfo(1, 0, 0, 50, 100),
                          CellInfo(2, 50, 0, 100, 100)])

    def test_no_global_index(self):
        """Test that files and plain directories have no global index."""
        path = self.write('part-00000', '1,1\n')
        self.assertIsNone(TextShapeSource(path).global_index())
        self.assertIsNone(TextShapeSource(self.tempdir.name).global_index())

    def test_broken_global_index(self):
        """Test that an unreadable global index raises IndexUnavailable."""
        self.write('part-00000', '1,1\n')
        self.write('_master.grid', 'one,two\n')
        source = TextShapeSource(self.tempdir.name)
        with self.assertRaises(IndexUnavailable):
            source.global_index()

    def test_shape_types(self):
        """Test shape type names and aliases."""
        path = self.write('rects.txt', '0,0,2,2\n')
        for shape_type in ('rect', 'Rectangle'):
            with self.subTest(shape_type=shape_type):
                self.assertEqual(list(TextShapeSource(path,
                                                      shape_type).shapes()),
                                 [Rectangle(0, 0, 2, 2)])
        with self.assertRaises(ConfigurationError):
            TextShapeSource(path, 'circle')

    def test_missing_input(self):
        """Test that a missing input raises FileNotFoundError."""
        with self.assertRaises(FileNotFoundError):
            TextShapeSource(os.path.join(self.tempdir.name, 'nothing'))


class PackerTest(unittest.TestCase):
    """Test packing a sample of shapes into cells."""

    def test_cells_tile_the_mbr(self):
        """Test that packed cells cover the MBR without overlap."""
        mbr = Rectangle(0, 0, 100, 100)
        source = MemoryShapeSource(random_points(1000, 8))
        for count in (1, 4, 5, 9):
            with self.subTest(count=count):
                cells = pack_in_rectangles(source, mbr, count, seed=1)
                self.assertEqual([c.cell_id for c in cells],
                                 list(range(1, count + 1)))
                self.assertEqual(union_all(cells), mbr)
                self.assertAlmostEqual(
                    sum(c.width * c.height for c in cells), 10000)

    def test_cells_balance_shapes(self):
        """Test that cells hold about the same number of shapes."""
        points = random_points(2000, 9)
        cells = pack_in_rectangles(MemoryShapeSource(points),
                                   Rectangle(0, 0, 100, 100), 4, seed=2)
        for cell in cells:
            with self.subTest(cell=cell):
                inside = sum(1 for p in points
                             if cell.x1 <= p.x < cell.x2 and
                             cell.y1 <= p.y < cell.y2)
                self.assertGreater(inside, 300)
                self.assertLess(inside, 700)

    def test_small_sample_falls_back_to_grid(self):
        """Test packing fewer shapes than cells."""
        cells = pack_in_rectangles(MemoryShapeSource([Point(1, 1)]),
                                   Rectangle(0, 0, 10, 10), 4)
        self.assertEqual(cells, [CellInfo(1, 0, 0, 5, 5),
                                 CellInfo(2, 5, 0, 10, 5),
                                 CellInfo(3, 0, 5, 5, 10),
                                 CellInfo(4, 5, 5, 10, 10)])


if __name__ == '__main__':
    unittest.main()
