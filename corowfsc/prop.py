"""Propagation primitives: relays, angular spectrum, and matrix Fourier transforms."""
import logging

import numpy as np
from scipy.signal.windows import tukey

from . import check, util
from .mask import gen_vortex_mask

log = logging.getLogger(__name__)


def relay(E_in, Nrelay, centering='pixel'):
    """
    Perform re-imaging of the input E-field through optical relays.

    Each relay (two Fourier transforms) rotates the field by 180 degrees.
    For a pixel-centered array the DC pixel is moved back into place after
    an odd number of relays.

    Parameters
    ----------
    E_in : array_like
        Input electric field
    Nrelay: int
        Number of times to relay (and rotate by 180 degrees)
    centering : string
        'pixel' or 'interpixel'

    Returns
    -------
    E_out : array_like
        Input E-field rotated by 180 degrees times the number of relays.
    """
    check.centering(centering)
    E_in = check.twoD_array(E_in, 'E_in', TypeError)
    check.scalar_integer(Nrelay, 'Nrelay', TypeError)

    if np.mod(Nrelay, 2) == 1:
        E_out = E_in[::-1, ::-1]
        if centering == 'pixel':
            E_out = np.roll(E_out, (1, 1), axis=(0, 1))
    else:
        E_out = E_in

    return E_out


def ptp(E_in, full_width, wavelength, dz):
    """
    Propagate an electric field array using the angular spectrum technique.

    Parameters
    ----------
    E_in : array_like
        Square (i.e. NxN) input array.
    full_width : float
        The width along each side of the array [meters]
    wavelength : float
        Propagation wavelength [meters]
    dz : float
        Axial propagation distance [meters]

    Returns
    -------
    array_like
        Field after propagating over distance dz.
    """
    E_in = check.twoD_array(E_in, 'E_in', TypeError)
    check.real_positive_scalar(full_width, 'full_width', TypeError)
    check.real_positive_scalar(wavelength, 'wavelength', TypeError)
    check.real_scalar(dz, 'dz', TypeError)

    M, N = E_in.shape
    if M != N:
        raise ValueError('Input array is not square')

    dx = full_width / N
    N_critical = int(np.floor(wavelength * np.abs(dz) / (dx ** 2)))
    if N < N_critical:
        log.warning('Input array is undersampled for angular spectrum '
                    'propagation. Minimum required samples: %d. Actual: %d.',
                    N_critical, N)

    fx = np.arange(-N // 2, N // 2) / full_width
    rho = util.radial_grid(fx)

    kernel = np.fft.fftshift(np.exp(-1j * np.pi * wavelength * dz * (rho ** 2)))
    intermediate = np.fft.fftn(np.fft.fftshift(E_in))

    return np.fft.ifftshift(np.fft.ifftn(kernel * intermediate))


def _dft_kernel(u, v, scale=1.):
    """Matrix exp(-2 pi i u v^T / scale) for 1-D axes u and v."""
    return np.exp(-2j*np.pi*np.outer(u, v)/scale)


def mft_f2p(E_foc, fl, wavelength, dxi, deta, dx, N, centering='pixel'):
    """
    Propagate a field from a focal plane to a pupil plane with a matrix DFT.

    Parameters
    ----------
    E_foc : array_like
        2-D focal-plane field of shape (Neta, Nxi)
    fl : float
        Focal length of the Fourier transforming lens [meters]
    wavelength : float
        Propagation wavelength [meters]
    dxi, deta : float
        Horizontal and vertical sample spacing in the focal plane [meters]
    dx : float
        Sample spacing of the pupil plane, both axes [meters]
    N : int
        Width of the square pupil-plane output [samples]
    centering : {'pixel', 'interpixel'}
        Centering of both coordinate grids

    Returns
    -------
    numpy ndarray
        N x N pupil-plane field
    """
    check.centering(centering)
    E_foc = check.twoD_array(E_foc, 'E_foc', TypeError)
    check.real_scalar(fl, 'fl', TypeError)
    check.real_positive_scalar(wavelength, 'wavelength', TypeError)
    check.real_positive_scalar(dxi, 'dxi', TypeError)
    check.real_positive_scalar(deta, 'deta', TypeError)
    check.real_positive_scalar(dx, 'dx', TypeError)
    check.positive_scalar_integer(N, 'N', TypeError)

    Neta, Nxi = E_foc.shape
    lf = wavelength*fl
    x = util.create_axis(N, dx, centering=centering)
    xi = util.create_axis(Nxi, dxi, centering=centering)
    eta = util.create_axis(Neta, deta, centering=centering)

    # Square pupil sampling: dy = dx
    scaling = np.sqrt(dx*dx*dxi*deta)/lf
    return scaling*np.linalg.multi_dot([_dft_kernel(x, eta, lf), E_foc,
                                        _dft_kernel(xi, x, lf)])


def mft_p2f(E_pup, fl, wavelength, dx, dxi, Nxi, deta, Neta,
            centering='pixel'):
    """
    Propagate a square pupil-plane field to a focal plane with a matrix DFT.

    The focal-plane grid is chosen freely, so a small region can be sampled
    finely without zero padding the pupil.

    Parameters
    ----------
    E_pup : array_like
        Square 2-D pupil-plane field
    fl : float
        Focal length of the Fourier transforming lens [meters]
    wavelength : float
        Propagation wavelength [meters]
    dx : float
        Sample spacing of the pupil plane, both axes [meters]
    dxi, deta : float
        Horizontal and vertical sample spacing in the focal plane [meters]
    Nxi, Neta : int
        Number of focal-plane samples along each axis
    centering : {'pixel', 'interpixel'}
        Centering of both coordinate grids

    Returns
    -------
    numpy ndarray
        Focal-plane field of shape (Neta, Nxi)
    """
    check.centering(centering)
    E_pup = check.twoD_array(E_pup, 'E_pup', TypeError)
    check.real_scalar(fl, 'fl', TypeError)
    check.real_positive_scalar(wavelength, 'wavelength', TypeError)
    check.real_positive_scalar(dx, 'dx', TypeError)
    check.real_positive_scalar(dxi, 'dxi', TypeError)
    check.positive_scalar_integer(Nxi, 'Nxi', TypeError)
    check.real_positive_scalar(deta, 'deta', TypeError)
    check.positive_scalar_integer(Neta, 'Neta', TypeError)

    M, N = E_pup.shape
    if M != N:
        raise ValueError('Input array is not square')

    lf = wavelength*fl
    x = util.create_axis(N, dx, centering=centering)
    xi = util.create_axis(Nxi, dxi, centering=centering)
    eta = util.create_axis(Neta, deta, centering=centering)

    scaling = np.sqrt(dx*dx*dxi*deta)/lf
    return scaling*np.linalg.multi_dot([_dft_kernel(eta, x, lf), E_pup,
                                        _dft_kernel(x, xi, lf)])


def mft_p2v2p(pupilPre, charge, beamRadius, inVal, outVal):
    """
    Propagate from the pupil before a vortex FPM to the pupil after it.

    The focal plane is split into a coarse DFT of the whole region and a
    finely sampled DFT of the central region, joined by radial Tukey
    windows.

    Parameters
    ----------
    pupilPre : array_like
        2-D E-field at pupil plane before the vortex focal plane mask
    charge : int, float
        Charge of the vortex mask
    beamRadius : float
        Beam radius at pupil plane. Units of pixels.
    inVal : float
        Inner radius of the window transition [lambda/D]
    outVal : float
        Outer radius of the finely sampled region [lambda/D]

    Returns
    -------
    pupilPost : array_like
        2-D E-field at pupil plane after the vortex focal plane mask
    """
    pupilPre = check.twoD_array(pupilPre, 'pupilPre', TypeError)
    check.real_scalar(charge, 'charge', TypeError)
    check.real_positive_scalar(beamRadius, 'beamRadius', TypeError)
    check.real_positive_scalar(inVal, 'inVal', TypeError)
    check.real_positive_scalar(outVal, 'outVal', TypeError)

    D = 2.0*beamRadius
    samplesPerLamD = 4.

    NA = pupilPre.shape[1]
    NB = util.ceil_even(samplesPerLamD*D)

    RHO = util.radial_grid(np.arange(-NB/2., NB/2., dtype=float))
    windowKnee = 1. - inVal/outVal
    # Sampled on the coarse grid and on the fine grid, respectively
    windowCoarse = gen_tukey_for_vortex(2*outVal*samplesPerLamD, RHO,
                                        windowKnee)
    windowFine = gen_tukey_for_vortex(NB, RHO, windowKnee)
    FPM = gen_vortex_mask(charge, NB)

    x = np.arange(-NA/2, NA/2, dtype=float)/D
    pupilPost = np.zeros(pupilPre.shape, dtype=complex)
    # (focal axis, normalization, focal-plane weight)
    for u, norm, window in (
            (np.arange(-NB/2, NB/2)/samplesPerLamD, 1/(D*samplesPerLamD),
             1 - windowCoarse),
            (np.arange(-NB/2, NB/2)*2*outVal/NB, 2*outVal/(D*NB),
             windowFine)):
        Efoc = norm*_dft_kernel(u, x) @ pupilPre @ _dft_kernel(x, u)
        pupilPost += norm*_dft_kernel(x, u) @ (Efoc*FPM*window) @ \
            _dft_kernel(u, x)

    return pupilPost


def gen_tukey_for_vortex(Nwindow, RHO, alpha):
    """
    Compute a radial Tukey window for propagating through a vortex coronagraph.

    Parameters
    ----------
    Nwindow : float, int
        Full width of the window [samples]
    RHO : array_like
        Radial coordinates over which to compute a Tukey function
    alpha : float
        Shape parameter of the Tukey window, representing the fraction of the
        window inside the cosine tapered region.

    Returns
    -------
    windowTukey : array_like
        Tukey window of same size as input RHO
    """
    check.real_scalar(Nwindow, 'Nwindow', TypeError)
    check.real_scalar(alpha, 'alpha', TypeError)

    Nlut = int(10*Nwindow)
    rhos0 = np.linspace(-Nwindow/2, Nwindow/2, Nlut)
    lut = tukey(Nlut, alpha)

    return np.interp(RHO, rhos0, lut)
