#!/usr/bin/python3

"""Plan and run a heat map plot.

A run has two stages. prepare() settles everything up front: the area to
draw, the partitioning, the image size and the sample ratio. Configuration
errors surface here, before any worker starts. A PlotJob then maps every
input split in a worker process, groups the outputs by key, and reduces each
key to a Tile, which an ImageOutput finally writes.

Use plot_heatmap for the common case:

    source = TextShapeSource('points.csv', 'point')
    plot_heatmap(source, PlotParams({'width': 800}), ImageOutput('out.png'))
"""

import logging
import multiprocessing as mp
import os
import random
import threading
import time
from collections import defaultdict
from functools import partial

from heatmap.common import GridInfo
from heatmap.errors import (ConfigurationError, ImageTooLarge, MissingMBR,
                            PlotCancelled, UnknownPartition)
from heatmap.partition import DataPlan, GridPlan, SkewedPlan
from heatmap.source import file_mbr, pack_in_rectangles

log = logging.getLogger(__name__)

MAX_IMAGE_PIXELS = 1 << 28


def adjust_aspect_ratio(width, height, mbr):
    """Shrink width or height so that the image has the aspect of mbr.

    When the height is shrunk, it is also made even, which video encoders
    need.
    """
    mbr_aspect = mbr.width / mbr.height
    if mbr_aspect == width / height:
        return width, height
    if mbr_aspect > width / height:
        height = int(mbr.height * width / mbr.width)
        height = max(2, height & ~1)
    else:
        width = max(1, int(mbr.width * height / mbr.height))
    return width, height


def compute_sample_ratio(factor, width, height, record_count):
    """Return the share of points to keep so about factor*pixels remain."""
    if record_count <= 0:
        return 1.0
    return factor * width * height / record_count


def plan_partition(partition, mbr, index=None, reducers=1, packer=None):
    """Decide how to partition a plot of the area mbr.

    partition is "data", "grid" or "space". A global index with more than
    one cell is reused as it is; otherwise "grid" lays a grid of reducers
    cells over mbr and "space" asks packer (a callable taking mbr) for cells.
    Returns a DataPlan, GridPlan or SkewedPlan.
    """
    scheme = (partition or 'data').lower()
    if scheme == 'data':
        log.info('Plot using data partitioning')
        return DataPlan(mbr)
    if scheme not in ('space', 'grid'):
        raise UnknownPartition(partition)
    if index is not None and len(index) > 1:
        log.info('Partitioned plot with an already partitioned file')
        return SkewedPlan(tuple(index))
    # A global index of one cell is a non-indexed file with a cached MBR.
    if scheme == 'grid':
        log.info('Grid partition a file then plot')
        return GridPlan(GridInfo.for_cells(mbr, max(1, reducers)))
    log.info('Use skewed partitioning then plot')
    if packer is None:
        raise ConfigurationError('Skewed partitioning needs a rectangle '
                                 'packer or a global index')
    return SkewedPlan(tuple(packer(mbr)))


def prepare(source, params):
    """Work out the partition plan and PlotSettings for a run."""
    summary = None
    mbr = params.query_range()
    if mbr is None:
        summary = file_mbr(source)
        mbr = summary.mbr
        if mbr is None:
            raise MissingMBR('The input has no shapes and no query range '
                             'was given')
        if not mbr.is_valid():
            raise MissingMBR('The input MBR {} has no area; give a query '
                             'range with rect:x1,y1,x2,y2'.format(tuple(mbr)))
    log.info('File MBR: %s', tuple(mbr))

    width, height = params.getint('width'), params.getint('height')
    if width <= 0 or height <= 0:
        raise ConfigurationError('Image size {}x{} is not positive'
                                 .format(width, height))

    scheme = (params.get('partition') or 'data').lower()
    reducers = params.getint('reducers', fallback=os.cpu_count() or 1)
    index = (source.global_index() if scheme in ('space', 'grid')
             else None)
    packer = partial(pack_in_rectangles, source, cell_count=reducers,
                     seed=params.getint('seed'))
    plan = plan_partition(scheme, mbr, index, reducers, packer)

    if params.is_set('keep-ratio', True):
        width, height = adjust_aspect_ratio(width, height, mbr)
    if width * height > MAX_IMAGE_PIXELS:
        raise ImageTooLarge('A {}x{} image has more than {} pixels'
                            .format(width, height, MAX_IMAGE_PIXELS))

    sample_ratio = params.getfloat('sampleratio')
    if params.is_set('sample'):
        if summary is None:
            summary = file_mbr(source)
        sample_ratio = compute_sample_ratio(
            params.getfloat('samplefactor'), width, height,
            summary.record_count)
        log.info('Sampling points with a ratio of %g', sample_ratio)

    log.info('Creating an image of size %dx%d', width, height)
    return plan, params.settings(width, height, sample_ratio)


def _map_task(args):
    """Run a partitioner's map half on one split."""
    source, split, split_index, plan, settings = args
    seed = None if settings.seed is None else settings.seed + split_index
    partitioner = plan.partitioner(settings, random.Random(seed))
    return [(key, partitioner.encode(value))
            for key, value in partitioner.map(source.read_split(split))]


def _reduce_task(args):
    """Run a partitioner's reduce half on the values of one key."""
    plan, settings, key, values = args
    partitioner = plan.partitioner(settings)
    return partitioner.reduce(key, map(partitioner.decode, values))


def _key_order(item):
    key, _ = item
    return (key is not None, key if key is not None else 0)


def _get_context(name):
    try:
        return mp.get_context(name)
    except ValueError:
        return mp.get_context()


class PlotJob:
    """One planned plot run.

    Call run to execute it in the current thread, or start to execute it in
    the background and wait for the result later. With workers <= 1 all
    work happens in-process; otherwise a multiprocessing pool is used.
    """

    def __init__(self, source, plan, settings, workers=1, splits=None,
                 output=None, mp_context=None):
        """Initialise a job. splits defaults to four per worker."""
        if workers < 1:
            raise ConfigurationError('workers must be at least 1')
        self.source = source
        self.plan = plan
        self.settings = settings
        self.workers = workers
        self.split_count = splits if splits is not None else 4 * workers
        self.output = output
        self.mp_context = mp_context
        self._cancelled = threading.Event()
        self._thread = None
        self._result = self._error = None

    def cancel(self):
        """Ask the job to stop. Nothing is written once it has stopped."""
        self._cancelled.set()

    @property
    def cancelled(self):
        """Whether cancel has been called."""
        return self._cancelled.is_set()

    def _execute(self, pool, function, tasks):
        results = (map(function, tasks) if pool is None
                   else pool.imap(function, tasks))
        for result in results:
            if self.cancelled:
                raise PlotCancelled('Plot job was cancelled')
            yield result

    def _run_phases(self, pool, map_tasks):
        groups = defaultdict(list)
        for done, pairs in enumerate(
                self._execute(pool, _map_task, map_tasks), 1):
            for key, value in pairs:
                groups[key].append(value)
            log.debug('Mapped %d of %d splits', done, len(map_tasks))
        for key in self.plan.partitioner(self.settings).keys():
            groups.setdefault(key, [])
        reduce_tasks = [(self.plan, self.settings, key, values)
                        for key, values in sorted(groups.items(),
                                                  key=_key_order)]
        return list(self._execute(pool, _reduce_task, reduce_tasks))

    def run(self):
        """Execute the job, write the output if any and return the tiles."""
        started = time.time()
        splits = self.source.splits(self.split_count)
        log.info('Plotting %d splits with %s partitioning on %d workers',
                 len(splits), self.plan.scheme, self.workers)
        map_tasks = [(self.source, split, i, self.plan, self.settings)
                     for i, split in enumerate(splits)]
        if self.workers <= 1:
            tiles = self._run_phases(None, map_tasks)
        else:
            with _get_context(self.mp_context).Pool(self.workers) as pool:
                tiles = self._run_phases(pool, map_tasks)
        if self.cancelled:
            raise PlotCancelled('Plot job was cancelled')
        if self.output is not None:
            self.output.commit(tiles, self.settings.width,
                               self.settings.height)
        log.info('Plot heat map finished in %d millis',
                 (time.time() - started) * 1000)
        return tiles

    def _run_in_background(self):
        try:
            self._result = self.run()
        except Exception as err:
            log.error('Background plot job failed: %s', err)
            self._error = err

    def start(self):
        """Run the job on a background thread and return self."""
        self._thread = threading.Thread(target=self._run_in_background,
                                        name='plot-job')
        self._thread.start()
        return self

    def done(self):
        """Whether a started job has finished."""
        return self._thread is not None and not self._thread.is_alive()

    def wait(self, timeout=None):
        """Wait for a started job and return its tiles or raise its error."""
        if self._thread is None:
            raise RuntimeError('Plot job was not started')
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError('Plot job still running')
        if self._error is not None:
            raise self._error
        return self._result


def create_job(source, params, output=None, mp_context=None):
    """Check the output, prepare a run and return its PlotJob."""
    if output is not None:
        output.check()
    plan, settings = prepare(source, params)
    workers = params.getint('workers', fallback=os.cpu_count() or 1)
    return PlotJob(source, plan, settings, workers=workers,
                   splits=params.getint('splits'), output=output,
                   mp_context=mp_context)


def plot_heatmap(source, params, output=None, background=None):
    """Plot source as configured by params.

    Returns the list of Tiles, or with background set (by argument or by
    the "background" parameter) the started PlotJob.
    """
    job = create_job(source, params, output)
    if background is None:
        background = params.is_set('background')
    if background:
        return job.start()
    return job.run()
