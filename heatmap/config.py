#!/usr/bin/python3

"""Plot parameters and the settings passed on to workers.

Parameters are strings held in the [plot] section of a ConfigParser. They
come from three layers, later ones overriding earlier ones: the built-in
DEFAULTS, an optional INI file with a [plot] section, and key:value pairs
and -flags from the command line (see parse_params).

Once the driver has settled the image size and sample ratio, it freezes the
parameters into a PlotSettings namedtuple, which is what workers receive.
"""

import os
from collections import namedtuple
from configparser import ConfigParser, ExtendedInterpolation

from heatmap.colormap import ValueRange, make_gradient
from heatmap.common import Rectangle
from heatmap.errors import ConfigurationError, InvalidValueRange

SECTION = 'plot'

DEFAULTS = {
    'shape': 'point',
    'width': '1000',
    'height': '1000',
    'radius': '5',
    'sigma': '8',
    'color1': 'blue',
    'color2': 'red',
    'gradient': 'hue',
    'partition': 'data',
    'keep-ratio': 'true',
    'samplefactor': '1.0',
    'sampleratio': '0.01',
}

# Switches given on the command line as -name.
FLAGS = ('skipzeros', 'smooth', 'sample', 'overwrite', 'vflip', 'background')

PlotSettings = namedtuple('PlotSettings', 'width height radius smooth sigma '
                                          'skip_zeros value_range gradient '
                                          'sample sample_ratio query_range '
                                          'seed')


def parse_value_range(text):
    """Parse "min..max" or "min,max" into a ValueRange."""
    parts = text.split('..', 1) if '..' in text else text.split(',', 1)
    try:
        vmin, vmax = map(float, parts)
    except ValueError:
        raise InvalidValueRange('Invalid value range {!r}, expected min..max '
                                'or min,max'.format(text)) from None
    if vmin > vmax:
        raise InvalidValueRange('Value range {!r} has min > max'.format(text))
    return ValueRange(vmin, vmax)


def parse_rectangle(text):
    """Parse "x1,y1,x2,y2" into a Rectangle with positive area."""
    try:
        x1, y1, x2, y2 = map(float, text.split(','))
    except ValueError:
        raise ConfigurationError('Invalid rectangle {!r}, expected '
                                 'x1,y1,x2,y2'.format(text)) from None
    rect = Rectangle(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))
    if not rect.is_valid():
        raise ConfigurationError('Rectangle {!r} has no area'.format(text))
    return rect


def parse_params(tokens):
    """Turn command-line tokens like "width:500" into a parameter dict."""
    params = {}
    for token in tokens:
        key, sep, value = token.partition(':')
        if not sep or not key:
            raise ConfigurationError('Invalid parameter {!r}, expected '
                                     'key:value'.format(token))
        params[key.lower()] = value
    return params


class PlotParams:
    """Typed access to the parameters of one plot run."""

    def __init__(self, params=None, config_file=None):
        """Layer defaults, an optional INI file and explicit parameters.

        params is a mapping; values that are not strings are converted.
        config_file may be a path or an open text file.
        """
        self._parser = ConfigParser(inline_comment_prefixes=('//',),
                                    interpolation=ExtendedInterpolation())
        self._parser.read_dict({SECTION: DEFAULTS})
        if config_file is not None:
            if isinstance(config_file, (str, os.PathLike)):
                with open(config_file, 'rt') as cfg_file:
                    self._parser.read_file(cfg_file)
            else:
                self._parser.read_file(config_file)
        if params:
            self._parser.read_dict({SECTION: {
                key: str(value).lower() if isinstance(value, bool)
                else str(value)
                for key, value in params.items() if value is not None
            }})
        self.section = self._parser[SECTION]

    def __contains__(self, key):
        return key in self.section

    def _convert(self, getter, key, fallback):
        try:
            return getter(key, fallback=fallback)
        except ValueError as err:
            raise ConfigurationError('Invalid value for {}: {}'
                                     .format(key, err)) from None

    def get(self, key, fallback=None):
        """Return a parameter as a string."""
        return self.section.get(key, fallback=fallback)

    def getint(self, key, fallback=None):
        """Return a parameter as an int."""
        return self._convert(self.section.getint, key, fallback)

    def getfloat(self, key, fallback=None):
        """Return a parameter as a float."""
        return self._convert(self.section.getfloat, key, fallback)

    def is_set(self, key, fallback=False):
        """Return a parameter as a bool; flags default to False."""
        return self._convert(self.section.getboolean, key, fallback)

    def value_range(self):
        """Return the configured ValueRange, or None to derive it."""
        text = self.get('valuerange')
        return parse_value_range(text) if text else None

    def query_range(self):
        """Return the configured query Rectangle, or None."""
        text = self.get('rect')
        return parse_rectangle(text) if text else None

    def gradient(self):
        """Create the configured gradient color map."""
        return make_gradient(self.get('gradient'), self.get('color1'),
                             self.get('color2'))

    def settings(self, width, height, sample_ratio):
        """Freeze the parameters into PlotSettings for the given image."""
        radius = self.getint('radius')
        if radius < 0:
            raise ConfigurationError('radius must not be negative')
        sigma = self.getfloat('sigma')
        if sigma <= 0:
            raise ConfigurationError('sigma must be positive')
        return PlotSettings(
            width=width,
            height=height,
            radius=radius,
            smooth=self.is_set('smooth'),
            sigma=sigma,
            skip_zeros=self.is_set('skipzeros'),
            value_range=self.value_range(),
            gradient=self.gradient(),
            sample=self.is_set('sample'),
            sample_ratio=sample_ratio,
            query_range=self.query_range(),
            seed=self.getint('seed'),
        )
