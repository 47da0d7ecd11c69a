"""
Simple mask generators for pupils, focal-plane masks, DM stops and dark holes.

Hard-edged apertures are drawn with PROPER so that their edges are
antialiased the same way as in the full model.
"""
import numpy as np
from numpy import cos, sin

import proper

from . import check
from .util import ceil_even, azimuthal_grid

_WL_DUMMY = 1e-6  # wavelength (m); no propagation is done here.


def _init_proper(Dmask, dx, centering):
    """Initialize PROPER for generating mask representations."""
    check.centering(centering)

    if centering == "pixel":
        # Needs up to two more pixels when pixel centered.
        Narray = ceil_even(Dmask / dx + 0.5)
    else:
        Narray = ceil_even(Dmask / dx)

    return proper.prop_begin(Narray * dx, _WL_DUMMY, Narray, 1.0)


def gen_dm_stop(dx, diamMask, centering):
    """
    Make a circular aperture to place centered on the beam at a DM.

    Parameters
    ----------
    dx : float
        spatial resolution for a pixel. Any units as long as they match that of
        diamMask
    diamMask : float
        diameter of the aperture mask. Any units as long as they match that of
        dx
    centering :
        centering of beam in array. Either 'pixel' or 'interpixel'

    Returns
    -------
    numpy ndarray
        2-D square array of a circular stop at a DM. Cropped down to the
        smallest even-sized array with no extra zero padding.

    """
    check.real_positive_scalar(dx, 'dx', TypeError)
    check.real_positive_scalar(diamMask, 'diamMask', TypeError)
    check.centering(centering)

    wf = _init_proper(diamMask, dx, centering)

    cshift = -dx / 2 * (centering == "interpixel")
    proper.prop_circular_aperture(wf, diamMask/2., cshift, cshift)

    return np.fft.ifftshift(np.abs(wf.wfarr))


def gen_pupil_simple(inputs):
    """
    Generate a circular pupil with an optional central obscuration.

    Also used for annular Lyot stops.

    Parameters
    ----------
    inputs : dict
        Required keys are "Nbeam" (aperture diameter in pixels), "Npad"
        (width of the square output array) and "OD" (outer diameter in pupil
        diameters). Optional keys are "ID" (inner diameter in pupil
        diameters, default 0) and "centering" (default 'pixel').

    Returns
    -------
    pupil : numpy ndarray
        2-D amplitude mask
    """
    check.is_dict(inputs, 'inputs')

    Nbeam = inputs["Nbeam"]
    Narray = inputs["Npad"]
    OD = inputs["OD"]
    ID = inputs.get("ID", 0.)
    centering = inputs.get("centering", "pixel")

    check.real_positive_scalar(Nbeam, 'Nbeam', TypeError)
    check.positive_scalar_integer(Narray, 'Npad', TypeError)
    check.real_positive_scalar(OD, 'OD', TypeError)
    check.real_nonnegative_scalar(ID, 'ID', TypeError)
    check.centering(centering)
    if ID > OD:
        raise ValueError("Inner diameter is larger than outer diameter.")

    Dbeam = 1.0  # diameter of beam (normalized to itself)
    dx = Dbeam/Nbeam
    bdf = Nbeam/Narray  # beam diameter fraction
    cshift = -dx/2. if centering == 'interpixel' else 0.

    bm = proper.prop_begin(Dbeam, _WL_DUMMY, Narray, bdf)
    proper.prop_circular_aperture(bm, OD/2., cshift, cshift)
    if ID > 0:
        proper.prop_circular_obscuration(bm, ID/2., cshift, cshift)

    return np.fft.ifftshift(np.abs(bm.wfarr))


def gen_annular_fpm(inputs):
    """
    Generate an annular FPM using PROPER.

    Outside the outer ring is opaque. If rhoOuter = infinity, then the outer
    ring is omitted and the mask is cropped down to the size of the inner spot.
    The inner spot has a specifiable amplitude value. The output array is the
    smallest size that fully contains the mask.

    Parameters
    ----------
    inputs : dict
        pixresFPM:  resolution in pixels per lambda_c/D
        rhoInner:   radius of inner FPM amplitude spot (in lambda_c/D)
        rhoOuter:   radius of outer opaque FPM ring (in lambda_c/D). Set to
                    infinity for an occulting-spot only FPM
        FPMampFac:  amplitude transmission of inner FPM spot
        centering:  pixel centering

    Returns
    -------
    mask : numpy ndarray
        cropped-down, 2-D FPM representation. amplitude only
    """
    check.is_dict(inputs, 'inputs')

    pixresFPM = inputs["pixresFPM"]
    rhoInner = inputs["rhoInner"]
    rhoOuter = inputs["rhoOuter"]
    FPMampFac = inputs.get("FPMampFac", 0.)
    centering = inputs.get("centering", "pixel")
    check.real_positive_scalar(pixresFPM, 'pixresFPM', TypeError)
    check.real_positive_scalar(rhoInner, 'rhoInner', TypeError)
    check.real_positive_scalar(rhoOuter, 'rhoOuter', TypeError)
    check.real_nonnegative_scalar(FPMampFac, 'FPMampFac', TypeError)
    check.centering(centering)

    dxiUL = 1.0 / pixresFPM  # lambda_c/D per pixel. "UL" for unitless
    rhoMax = rhoInner if np.isinf(rhoOuter) else rhoOuter
    if centering == "interpixel":
        Narray = ceil_even(2 * rhoMax / dxiUL)
    else:
        Narray = ceil_even(2 * (rhoMax / dxiUL + 0.5))

    diam = Narray * dxiUL  # width of array in lambda_c/D
    cshift = -diam / 2 / Narray if centering == "interpixel" else 0.

    wf = proper.prop_begin(diam, _WL_DUMMY, Narray, 1.0)

    if not np.isinf(rhoOuter):
        proper.prop_circular_aperture(wf, rhoOuter, cshift, cshift)

    # Inner spot of FPM (amplitude transmission can be nonzero)
    innerSpot = proper.prop_ellipse(wf, rhoInner, rhoInner, cshift, cshift,
                                    DARK=True) * (1 - FPMampFac) + FPMampFac

    mask = np.fft.ifftshift(np.abs(wf.wfarr))  # undo PROPER's fftshift
    return mask * innerSpot


def gen_sw_mask(inputs):
    """
    Generate a binary software mask for the focal plane.

    Used for the correction and scoring regions of the dark hole, and as a
    field stop.

    Parameters
    ----------
    inputs : dict
        Required keys:

        - pixresFP: pixels per lambda_c/D
        - rhoInner: inner radius (in lambda_c/D)
        - rhoOuter: outer radius (in lambda_c/D)
        - angDeg: angular opening (degrees) on each open side
        - whichSide: 'left', 'right', 'top', 'bottom', 'both' (or
          'leftright'), or 'topbottom'

        Optional keys: centering, shape ('circle', 'square', 'rect', 'd'),
        clockAngDeg, FOV, xiOffset, etaOffset, Nxi, Neta.

    Returns
    -------
    maskSW : numpy ndarray
        rectangular, even-sized, boolean software mask
    xis : numpy ndarray
        coordinates along the horizontal axis (in lambda_c/D)
    etas : numpy ndarray
        coordinates along the vertical axis (in lambda_c/D)
    """
    check.is_dict(inputs, 'inputs')

    pixresFP = inputs["pixresFP"]
    rhoInner = inputs["rhoInner"]
    rhoOuter = inputs["rhoOuter"]
    angRad = np.radians(inputs["angDeg"])
    whichSide = inputs["whichSide"].lower()

    centering = inputs.get("centering", "pixel")
    check.centering(centering)
    darkHoleShape = inputs.get("shape", "circle").lower()
    clockAngDeg = inputs.get("clockAngDeg", 0)
    FOV = inputs.get("FOV", rhoOuter)
    xiOffset = inputs.get("xiOffset", 0.)
    etaOffset = inputs.get("etaOffset", 0.)
    if darkHoleShape in {'square', 'rect', 'rectangle'}:
        maxExtent = np.max((1, 2*np.abs(np.cos(np.radians(clockAngDeg)))))
    else:
        maxExtent = 1
    minFOVxi = inputs.get("xiFOV", maxExtent*FOV + np.abs(xiOffset))
    minFOVeta = inputs.get("etaFOV", maxExtent*FOV + np.abs(etaOffset))

    if centering == "pixel":
        Nxi0 = ceil_even(2*(minFOVxi*pixresFP + 1/2))
        Neta0 = ceil_even(2*(minFOVeta*pixresFP + 1/2))
    else:
        Nxi0 = ceil_even(2*minFOVxi*pixresFP)
        Neta0 = ceil_even(2*minFOVeta*pixresFP)
    Nxi = inputs.get("Nxi", Nxi0)
    Neta = inputs.get("Neta", Neta0)

    deta = dxi = 1/pixresFP
    if centering == "interpixel":
        xis = np.arange(-(Nxi - 1)/2, (Nxi + 1)/2)*dxi
        etas = np.arange(-(Neta - 1)/2, (Neta + 1)/2)*deta
    else:
        xis = np.arange(-Nxi/2, Nxi/2) * dxi
        etas = np.arange(-Neta/2, Neta/2) * deta

    XIS, ETAS = np.meshgrid(xis - xiOffset, etas - etaOffset)
    RHOS = np.sqrt(XIS**2 + ETAS**2)
    THETAS = np.arctan2(ETAS, XIS)

    if whichSide in {'r', 'right', 'lr', 'rl', 'leftright', 'rightleft',
                     'both'}:
        clockAngRad = 0
    elif whichSide in {'l', 'left'}:
        clockAngRad = np.pi
    elif whichSide in {'t', 'top', 'u', 'up', 'tb', 'bt', 'ud', 'du',
                       'topbottom', 'bottomtop', 'updown', 'downup'}:
        clockAngRad = np.pi/2
    elif whichSide in {'b', 'bottom', 'd', 'down'}:
        clockAngRad = 3/2*np.pi
    else:
        raise ValueError('Invalid value given for inputs["whichSide"]')
    clockAngRad += np.radians(clockAngDeg)

    # Keep the edges clean of the numerical noise from RHOS*cos().
    eps = np.finfo(float).eps
    rhoInner = rhoInner - 13*eps
    rhoOuter = rhoOuter + 13*eps

    U = RHOS*cos(THETAS - clockAngRad)
    V = RHOS*sin(THETAS - clockAngRad)
    inBox = (np.abs(U) <= rhoOuter) & (np.abs(V) <= rhoOuter)
    if darkHoleShape in {'circle', 'annulus'}:
        mask0 = (RHOS >= rhoInner) & (RHOS <= rhoOuter)
    elif darkHoleShape == 'square':
        mask0 = inBox & (RHOS >= rhoInner)
    elif darkHoleShape in {'rect', 'rectangle'}:
        mask0 = inBox & (np.abs(U) >= rhoInner)
    elif darkHoleShape == 'd':
        mask0 = (np.abs(U) >= rhoInner) & (RHOS <= rhoOuter)
    else:
        raise ValueError('Invalid value given for inputs["shape"].')

    maskSW = mask0 & (np.abs(np.angle(np.exp(1j*(THETAS - clockAngRad))))
                      <= angRad/2)

    if whichSide in {'both', 'lr', 'rl', 'leftright', 'rightleft', 'tb', 'bt',
                     'ud', 'du', 'topbottom', 'bottomtop', 'updown', 'downup'}:
        maskSW2 = mask0 & (np.abs(np.angle(np.exp(
            1j*(THETAS - (clockAngRad + np.pi))))) <= angRad/2)
        maskSW = maskSW | maskSW2

    return maskSW, xis, etas


def gen_vortex_mask(charge, N):
    """
    Generate a vortex phase mask.

    Parameters
    ----------
    charge : int, float
        Charge of the vortex mask.
    N : int
        Number of points across output array.

    Returns
    -------
    vortex : numpy ndarray
        2-D vortex phase mask

    """
    check.real_scalar(charge, 'charge', TypeError)
    check.positive_scalar_integer(N, 'N', TypeError)
    return np.exp(1j*charge*azimuthal_grid(np.arange(-N/2., N/2.)))
