#!/usr/bin/python3

"""Colormaps turn frequencies into ARGB colors.

A colormap's colorize method takes an array of values and a ValueRange and
returns an array of the same shape holding 0xAARRGGBB integers. Values are
clamped to the range before they are colored.

Two gradients are available: HueGradient walks the shorter way round the
color wheel between its two end colors, ColorGradient mixes the A, R, G and B
channels independently.
"""

import colorsys
from abc import ABCMeta, abstractmethod
from collections import namedtuple

import numpy as np

from heatmap.errors import ConfigurationError


ValueRange = namedtuple('ValueRange', 'min max')

# Same values as the java.awt.Color constants.
NAMED_COLORS = {
    'black': 0xFF000000,
    'blue': 0xFF0000FF,
    'cyan': 0xFF00FFFF,
    'darkgray': 0xFF404040,
    'gray': 0xFF808080,
    'green': 0xFF00FF00,
    'lightgray': 0xFFC0C0C0,
    'magenta': 0xFFFF00FF,
    'orange': 0xFFFFC800,
    'pink': 0xFFFFAFAF,
    'red': 0xFFFF0000,
    'white': 0xFFFFFFFF,
    'yellow': 0xFFFFFF00,
}


def argb_channels(color):
    """Split a 0xAARRGGBB integer into its (a, r, g, b) channels."""
    return (color >> 24) & 0xFF, (color >> 16) & 0xFF, \
        (color >> 8) & 0xFF, color & 0xFF


def _pack_argb(a, r, g, b):
    """Pack channel arrays (0 to 255) into an array of ARGB integers."""
    a, r, g, b = (np.asarray(c, dtype=np.uint32) for c in (a, r, g, b))
    return (a << 24) | (r << 16) | (g << 8) | b


def _to_byte(channel):
    """Scale a channel in [0, 1] to an integer in [0, 255]."""
    return np.floor(channel * 255 + 0.5)


def _hsb_to_rgb(hue, saturation, brightness):
    """Convert HSB arrays to RGB arrays in [0, 1], like Color.HSBtoRGB."""
    h6 = (hue - np.floor(hue)) * 6
    sector = np.floor(h6).astype(int) % 6
    f = h6 - np.floor(h6)
    p = brightness * (1 - saturation)
    q = brightness * (1 - saturation * f)
    t = brightness * (1 - saturation * (1 - f))
    v = brightness
    r = np.choose(sector, [v, q, p, p, t, v])
    g = np.choose(sector, [t, v, v, q, p, p])
    b = np.choose(sector, [p, p, t, v, v, q])
    return r, g, b


class ColorMap(metaclass=ABCMeta):
    """The base color map.

    Custom color maps should inherit from this class and override the
    colorize(self, values, value_range) method.
    """

    @staticmethod
    def parse_color(color):
        r"""Parse a color name or hexadecimal ARGB string to an integer.

        Hexadecimal colors may be in one of the following formats, each with
        an optional hash ("#") or "0x" in front:
            ["AARRGGBB", "RRGGBB", "ARGB", "RGB"].
        Colors without an alpha component are opaque.
        """
        if not isinstance(color, str):
            return int(color) & 0xFFFFFFFF
        name = color.strip().lower()
        if name in NAMED_COLORS:
            return NAMED_COLORS[name]
        digits = name[2:] if name.startswith('0x') else name.lstrip('#')
        try:
            value = int(digits, 16)
        except ValueError:
            raise ConfigurationError('Invalid color {!r}'.format(color))
        if len(digits) in (3, 4):
            # Expand each short channel: #ABC -> #AABBCC.
            value = int(''.join(2 * c for c in digits), 16)
            digits *= 2
        if len(digits) == 6:
            return 0xFF000000 | value
        if len(digits) == 8:
            return value
        raise ConfigurationError('Invalid color {!r}'.format(color))

    @abstractmethod
    def colorize(self, values, value_range):
        """Map an array of values to an array of ARGB integers."""
        return NotImplemented

    def color_of(self, value, value_range):
        """Return the ARGB color of a single value as an int."""
        return int(self.colorize(np.array([value]), value_range)[0])


class GradientColorMap(ColorMap):
    """A color map fading from color1 at the minimum to color2 at the max.

    Subclasses implement _interpolate, mapping ratios in [0, 1] to colors.
    """

    name = NotImplemented

    def __init__(self, color1='blue', color2='red'):
        """Initialise a gradient between two colors."""
        self.color1 = self.parse_color(color1)
        self.color2 = self.parse_color(color2)

    def __repr__(self):
        return '{}(color1=0x{:08X}, color2=0x{:08X})'.format(
            type(self).__name__, self.color1, self.color2)

    def __eq__(self, other):
        return (type(self) is type(other) and
                (self.color1, self.color2) == (other.color1, other.color2))

    __hash__ = None

    @staticmethod
    def ratio(values, value_range):
        """Clamp values to the range and normalise them to [0, 1]."""
        vmin, vmax = value_range
        values = np.clip(np.asarray(values, dtype=np.float64), vmin, vmax)
        if vmax > vmin:
            return (values - vmin) / (vmax - vmin)
        return np.zeros_like(values)

    def colorize(self, values, value_range):
        """Map an array of values to an array of ARGB integers."""
        return self._interpolate(self.ratio(values, value_range))

    @abstractmethod
    def _interpolate(self, ratio):
        """Return the ARGB colors at the given ratios along the gradient."""
        return NotImplemented


class HueGradient(GradientColorMap):
    """Interpolate hue, saturation and brightness. Colors are opaque."""

    name = 'hue'

    def __init__(self, color1='blue', color2='red'):
        """Initialise a hue gradient and find the HSB of both ends."""
        super().__init__(color1, color2)
        self.hsb1 = self._to_hsb(self.color1)
        self.hsb2 = self._to_hsb(self.color2)

    @staticmethod
    def _to_hsb(color):
        _, r, g, b = argb_channels(color)
        return colorsys.rgb_to_hsv(r / 255, g / 255, b / 255)

    def _interpolate(self, ratio):
        """Return the ARGB colors at the given ratios along the gradient."""
        (h1, s1, b1), (h2, s2, b2) = self.hsb1, self.hsb2
        dh = h2 - h1
        # Go round the shorter way.
        if dh > 0.5:
            dh -= 1
        elif dh < -0.5:
            dh += 1
        r, g, b = _hsb_to_rgb(h1 + dh * ratio,
                              s1 + (s2 - s1) * ratio,
                              b1 + (b2 - b1) * ratio)
        return _pack_argb(np.full(np.shape(ratio), 255),
                          _to_byte(r), _to_byte(g), _to_byte(b))


class ColorGradient(GradientColorMap):
    """Interpolate the alpha, red, green and blue channels separately."""

    name = 'color'

    def _interpolate(self, ratio):
        """Return the ARGB colors at the given ratios along the gradient."""
        return _pack_argb(*(
            np.floor(c1 + (c2 - c1) * ratio + 0.5)
            for c1, c2 in zip(argb_channels(self.color1),
                              argb_channels(self.color2))
        ))


GRADIENTS = {cls.name: cls for cls in (HueGradient, ColorGradient)}


def make_gradient(mode='hue', color1='blue', color2='red'):
    """Create the gradient color map for a mode name ("hue" or "color")."""
    try:
        gradient_type = GRADIENTS[mode.lower()]
    except KeyError:
        raise ConfigurationError('Unknown gradient type {!r}, expected one '
                                 'of {}'.format(mode, ', '.join(GRADIENTS)))
    return gradient_type(color1, color2)
