"""Array and timing utilities."""
import logging
import time

import numpy as np

from . import check

log = logging.getLogger(__name__)


class TicToc(object):
    """Context manager that logs the elapsed time of its block."""

    def __init__(self, name=None, level=logging.INFO):
        self.name = name
        self.level = level
        self.elapsed = None

    def __enter__(self):
        self.tstart = time.time()
        return self

    def __exit__(self, type, value, traceback):
        self.elapsed = time.time() - self.tstart
        if self.name:
            log.log(self.level, '[%s] Elapsed: %.3f s', self.name,
                    self.elapsed)
        else:
            log.log(self.level, 'Elapsed: %.3f s', self.elapsed)


def ceil_even(x_in):
    """Smallest even integer not less than the real scalar x_in."""
    check.real_scalar(x_in, 'x_in', TypeError)
    return int(2 * np.ceil(0.5 * x_in))


def ceil_odd(x_in):
    """Smallest odd integer not less than the real scalar x_in."""
    check.real_scalar(x_in, 'x_in', TypeError)
    x_out = int(np.ceil(x_in))
    return x_out if x_out % 2 else x_out + 1


def pad_crop(arrayIn, outsize, extrapval=0):
    """
    Insert a 2D array into another array, centered and zero-padded.

    The input is placed at the center of an array of size ``outsize``; a
    dimension larger than ``outsize`` is truncated. For mixed even/odd sizes
    the offset follows the FFT center-pixel convention, so chained calls give
    the same result in any order.

    The output has the dtype of the input and is always a copy.

    Parameters
    ----------
     arrayIn: numpy ndarray
         input array to be padded or cropped
     outsize: array_like, int
         A positive integer or 2-element tuple/list/ndarray of positive
         integers giving dimensions of output array. If outsize is an int, the
         output has square dimensions of (outsize, outsize)
     extrapval: float
         Value of the padded region.

    Returns
    -------
     arrayOut: numpy ndarray
        an ndarray of the same size as ``outsize`` and type as ``arrayIn``

    """
    arrayIn = check.twoD_array(arrayIn, 'arrayIn', TypeError)
    check.real_scalar(extrapval, 'extrapval', TypeError)
    sh0 = arrayIn.shape
    if isinstance(outsize, check.int_types):
        sh1 = (int(outsize), int(outsize))
    else:
        try:
            sh1 = tuple(outsize)
        except TypeError:
            raise TypeError('outsize must be an integer or an iterable')
        if len(sh1) != 2:
            raise TypeError('Output dimensions must have 2 elements')
        if not all(isinstance(n, check.int_types) for n in sh1):
            raise TypeError('Output dimensions must be integers')
        sh1 = (int(sh1[0]), int(sh1[1]))
    if (sh1[0] <= 0) or (sh1[1] <= 0):
        raise TypeError('Output dimensions must be positive integers')

    arrayOut = np.full(sh1, extrapval, dtype=arrayIn.dtype)

    xneg = min(sh0[1]//2, sh1[1]//2)
    xpos = min(sh0[1] - sh0[1]//2, sh1[1] - sh1[1]//2)
    yneg = min(sh0[0]//2, sh1[0]//2)
    ypos = min(sh0[0] - sh0[0]//2, sh1[0] - sh1[0]//2)

    slice0 = (slice(sh0[0]//2-yneg, sh0[0]//2+ypos),
              slice(sh0[1]//2-xneg, sh0[1]//2+xpos))
    slice1 = (slice(sh1[0]//2-yneg, sh1[0]//2+ypos),
              slice(sh1[1]//2-xneg, sh1[1]//2+xpos))

    arrayOut[slice1] = arrayIn[slice0]

    return arrayOut


def _stretched_xy(axis, xStretch, yStretch):
    check.oneD_array(axis, 'axis', TypeError)
    check.real_scalar(xStretch, 'xStretch', TypeError)
    check.real_scalar(yStretch, 'yStretch', TypeError)
    # Row and column views; 2-D grids come from broadcasting
    return axis[None, :]/xStretch, axis[:, None]/yStretch


def radial_grid(axis, xStretch=1., yStretch=1.):
    """
    Radial distance of each point of the square grid spanned by axis.

    The x and y coordinates are divided by the stretch factors first, which
    gives elliptical contours for unequal factors.

    Parameters
    ----------
    axis : array_like
        1D coordinate axis, shared by x (columns) and y (rows)
    xStretch, yStretch : float
        Scale factors of the two coordinates

    Returns
    -------
    numpy ndarray
        2D array of shape (axis.size, axis.size)
    """
    x, y = _stretched_xy(axis, xStretch, yStretch)
    return np.sqrt(x**2 + y**2)


def azimuthal_grid(axis, xStretch=1., yStretch=1.):
    """2D grid of azimuth angles [radians] generated by a 1-D axis."""
    x, y = _stretched_xy(axis, xStretch, yStretch)
    return np.arctan2(y, x)


def create_axis(N, step, centering='pixel'):
    """
    Create a one-dimensional coordinate axis with a given size and step size.

    Pixel centering follows the FFT convention; interpixel centering shifts
    an even-sized axis by half a step. Odd-sized axes are pixel-centered
    regardless of ``centering``.

    Parameters
    ----------
    N : int
        Number of pixels in output axis
    step : float
        Physical step size between axis elements
    centering : 'pixel' or 'interpixel'
        Centering of the coordinates in the array.

    Returns
    -------
    array_like
        The output coordinate axis
    """
    check.positive_scalar_integer(N, 'N', TypeError)
    check.real_positive_scalar(step, 'step', TypeError)
    check.centering(centering)

    axis = np.arange(-N // 2, N // 2, dtype=np.float64) * step
    if N % 2:
        # arange(-N//2, N//2) is one short of symmetric for odd N
        axis = np.arange(-(N // 2), N // 2 + 1, dtype=np.float64) * step
    elif centering == 'interpixel':
        axis += 0.5 * step

    return axis
