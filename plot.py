#!/usr/bin/python3

"""Script to plot a heat map of the shapes in a text file."""

import logging
import sys
from argparse import ArgumentParser
from collections import namedtuple

from heatmap import ImageOutput, PlotParams, TextShapeSource, plot_heatmap
from heatmap.config import FLAGS, parse_params
from heatmap.errors import ConfigurationError, HeatmapError

log = logging.getLogger('plot')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def handle_args(custom_args=None):
    """Parse and return the script's command-line arguments using argparse."""
    Args = namedtuple('Args', 'input output params config log_level')
    parser = ArgumentParser(description='Plot a heat map of the shapes in a '
                                        'text file or directory of files.')
    add = parser.add_argument
    add('input', metavar='INPUT',
        help='The file or directory holding one shape per line.')
    add('output', metavar='OUTPUT',
        help='The PNG file to write the heat map to. If "-", prints the PNG '
             'file to stdout.')
    add('params', metavar='KEY:VALUE', nargs='*',
        help='Plot parameters, e.g. width:800 height:600 radius:3 '
             'partition:grid rect:0,0,100,100 valuerange:0..20 '
             'gradient:color color1:#00FF00 color2:red shape:rect. These '
             'override the [plot] section of the configuration file.')
    add('-skipzeros', action='store_true',
        help='Leave pixels without any shapes transparent.')
    add('-smooth', action='store_true',
        help='Stamp a Gaussian bell for each shape instead of a hard disk.')
    add('-sample', action='store_true',
        help='Only plot a random sample of the points, about samplefactor '
             'points per pixel.')
    add('-overwrite', action='store_true',
        help='Replace OUTPUT if it exists already.')
    add('-vflip', action='store_true',
        help='Flip the image upside down, so that y grows upwards.')
    add('-background', action='store_true',
        help='Run the plot on a background thread and wait for it.')
    add('-c', '--config', metavar='FILE',
        help='Read default parameters from the [plot] section of the INI '
             'file FILE.')
    add('--log-level', metavar='LEVEL', default='WARNING',
        type=str.upper, choices=LOG_LEVELS,
        help='Log messages of at least this level to stderr. One of {}. '
             'Defaults to WARNING.'.format(', '.join(LOG_LEVELS)))
    pargs = parser.parse_intermixed_args(custom_args)

    try:
        params = parse_params(pargs.params)
    except ConfigurationError as err:
        parser.error(str(err))
    for flag in FLAGS:
        if getattr(pargs, flag):
            params[flag] = True

    return Args(
        input=pargs.input,
        output=pargs.output,
        params=params,
        config=pargs.config,
        log_level=pargs.log_level,
    )


def main(custom_args=None):
    """The script's main entry point."""
    args = handle_args(custom_args)
    logging.basicConfig(level=args.log_level,
                        format='%(levelname)s:%(name)s: %(message)s')
    try:
        params = PlotParams(args.params, config_file=args.config)
        source = TextShapeSource(args.input, params.get('shape'))
        output = ImageOutput(args.output,
                             overwrite=params.is_set('overwrite'),
                             vflip=params.is_set('vflip'))
        result = plot_heatmap(source, params, output)
        if params.is_set('background'):
            log.info('Waiting for the background plot job')
            result.wait()
    except HeatmapError as err:
        print('Error: {}'.format(err), file=sys.stderr)
        return 1
    except FileNotFoundError as err:
        print('Error: {}'.format(err), file=sys.stderr)
        return 2
    return 0


if __name__ == '__main__':
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
    except BrokenPipeError:
        sys.exit(0)     # We were piped into something that crashed.
