"""Deformable mirror influence functions, surfaces and command constraints."""
import logging
from math import sin, cos, radians

import numpy as np
import proper
from astropy.io import fits
from scipy.interpolate import griddata, RectBivariateSpline

from . import check
from .check import ConfigurationError
from .util import ceil_even, ceil_odd, pad_crop

log = logging.getLogger(__name__)


def load_influence_function(dm):
    """
    Read the influence function of a DM from its FITS file.

    The header keywords P2PDX_M (pixel width in the file) and C2CDX_M
    (actuator pitch in the file) set the native sampling of the influence
    function at the modeled actuator pitch.

    Parameters
    ----------
    dm : corowfsc.config.Object
        DM record with `inf_fn`, `inf_sign` and `dm_spacing`. `inf0` and
        `dx_inf0` are added to it.

    Returns
    -------
    None
        modifies structure "dm" by reference

    """
    with fits.open(dm.inf_fn) as hdul:
        header = hdul[0].header
        dx1 = header['P2PDX_M']  # pixel width of influence function IN THE FILE [meters]
        pitch1 = header['C2CDX_M']  # actuator spacing x (m)
        inf0 = np.squeeze(np.asarray(hdul[0].data, dtype=float))

    sign = str(dm.get('inf_sign', '+'))
    if sign[:1] in ('-', 'n', 'm'):
        inf0 = -1*inf0
    elif sign[:1] in ('+', 'p'):
        pass
    else:
        raise ConfigurationError('Sign of influence function not recognized: '
                                 '%s' % sign)

    dm.inf0 = inf0
    dm.dx_inf0 = dm.dm_spacing*(dx1/pitch1)


def _rotation_matrix(dm):
    """Rotation matrix for the DM tilts and clocking."""
    sa, ca = sin(radians(dm.xtilt)), cos(radians(dm.xtilt))
    sb, cb = sin(radians(dm.ytilt)), cos(radians(dm.ytilt))
    sg, cg = sin(radians(-dm.zrot)), cos(radians(-dm.zrot))

    if not dm.get('flagZYX', False):
        Mrot = np.array([[cb*cg, sa*sb*cg - ca*sg, ca*sb*cg + sa*sg, 0.0],
                         [cb*sg, sa*sb*sg + ca*cg, ca*sb*sg - sa*cg, 0.0],
                         [-sb, sa*cb, ca*cb, 0.0],
                         [0.0, 0.0, 0.0, 1.0]])
    else:
        Mrot = np.array([[cb*cg, -cb*sg, sb, 0.0],
                         [ca*sg + sa*sb*cg, ca*cg - sa*sb*sg, -sa*cb, 0.0],
                         [sa*sg - ca*sb*cg, sa*cg + ca*sb*sg, ca*cb, 0.0],
                         [0.0, 0.0, 0.0, 1.0]])
    return Mrot


def _rotate_xy(Mrot, x, y):
    xyz = np.vstack([x, y, np.zeros_like(x), np.ones_like(x)])
    xyzRot = Mrot @ xyz
    return xyzRot[0, :], xyzRot[1, :]


def gen_poke_cube(dm, mp, dx_dm, NOCUBE=False):
    """
    Compute the datacube of each influence function.

    Influence functions are cropped down or padded up to the best size for
    angular spectrum propagation.

    Parameters
    ----------
    dm : corowfsc.config.Object
        Structure containing parameter values for the DM
    mp : ModelParameters
        Structure of model parameters. Needs `sbp_centers`, `d_P2_dm1` and
        `d_dm1_dm2`.
    dx_dm : float
        Pixel width [meters] at the DM plane
    NOCUBE : bool
        Switch that tells function not to compute the datacube of influence
        functions.

    Returns
    -------
    None
        modifies structure "dm" by reference

    """
    check.real_positive_scalar(dx_dm, 'dx_dm', TypeError)

    dm.dx = dx_dm
    if 'centering' not in dm:
        dm.centering = 'pixel'

    # Square grid of actuator centers [actuator widths]
    Xact, Yact = np.meshgrid(np.arange(dm.Nact) - dm.xc,
                             np.arange(dm.Nact) - dm.yc)
    dm.NactTotal = dm.Nact**2

    Mrot = _rotation_matrix(dm)
    xc_rot, yc_rot = _rotate_xy(Mrot, Xact.ravel(), Yact.ravel())
    dm.xy_cent_act = np.vstack([xc_rot, yc_rot])

    # Rotate the influence function on its native grid
    N0 = dm.inf0.shape[0]
    Npad = ceil_odd(np.sqrt(2.)*N0)
    inf0pad = pad_crop(dm.inf0, Npad)

    c0 = np.arange(Npad) + 1. - (np.fix(Npad/2.) + 1)
    Xs0, Ys0 = np.meshgrid(c0, c0)
    xsNew, ysNew = _rotate_xy(Mrot, Xs0.ravel(), Ys0.ravel())
    infMaster = griddata((xsNew, ysNew), inf0pad.ravel(), (Xs0, Ys0),
                         method='cubic', fill_value=0.)

    # Crop down the influence function until it has no zero padding left
    infSum = np.sum(infMaster)
    counter = 0
    while counter + 2 < infMaster.shape[0]:
        c = (counter + 2)//2
        if abs(infSum - np.sum(np.abs(infMaster[c:-c, c:-c]))) > 1e-7:
            break
        counter += 2
    if counter > 0:
        c = counter//2
        infMaster = infMaster[c:-c, c:-c].copy()
    dm.infMaster = infMaster
    Ninf0pad = infMaster.shape[0]

    x_inf0 = np.linspace(-(Ninf0pad-1)/2., (Ninf0pad-1)/2., Ninf0pad)*dm.dx_inf0

    # Number of points across the influence function at the DM plane's
    # resolution, and its padded size for angular spectrum propagation.
    Nbox = ceil_even(Ninf0pad*dm.dx_inf0/dx_dm)
    dm.Nbox = Nbox
    dmax = np.max(np.abs(np.array([mp.d_P2_dm1, mp.d_dm1_dm2,
                                   mp.d_P2_dm1 + mp.d_dm1_dm2])))
    Nmin = ceil_even(np.max(mp.sbp_centers)*dmax/dx_dm**2)
    dm.NboxAS = int(max(Nbox, Nmin))

    # Pad the DM array so that every influence function fits inside it. The
    # farthest actuator center is half an actuator from the nominal edge.
    NpixPerAct = dm.dm_spacing/dx_dm
    dm.NdmPad = ceil_even(dm.NboxAS + 2.0*(1 + (np.max(np.abs(
        dm.xy_cent_act)) + 0.5)*NpixPerAct))

    if dm.centering == 'pixel':
        dm.x_pupPad = np.linspace(-dm.NdmPad/2., dm.NdmPad/2. - 1,
                                  dm.NdmPad)*dx_dm
    else:
        dm.x_pupPad = np.linspace(-(dm.NdmPad-1)/2., (dm.NdmPad-1)/2.,
                                  dm.NdmPad)*dx_dm
    dm.y_pupPad = dm.x_pupPad
    dm.act_ele = np.arange(dm.NactTotal)

    if NOCUBE:
        return

    log.debug('Influence function padded from %d to %d points for A.S. '
              'propagation.', Nbox, dm.NboxAS)
    log.info('Computing datacube of DM influence functions...')

    # Locations of the postage stamps in the padded DM array
    dm.xy_cent_act_inPix = dm.xy_cent_act*NpixPerAct + 0.5
    dm.xy_cent_act_box = np.round(dm.xy_cent_act_inPix)
    dm.xy_box_lowerLeft = (dm.xy_cent_act_box +
                           (dm.NdmPad - Nbox)//2).astype(int)

    # Interpixel-centered coordinates of the stamp before the subpixel shift
    dm.x_box0 = np.linspace(-(Nbox-1)/2., (Nbox-1)/2., Nbox)*dx_dm

    inf_datacube = np.zeros((Nbox, Nbox, dm.NactTotal))
    interp_spline = RectBivariateSpline(x_inf0, x_inf0, infMaster)
    for iact in range(dm.NactTotal):
        xbox = dm.x_box0 - (dm.xy_cent_act_inPix[0, iact] -
                            dm.xy_cent_act_box[0, iact])*dx_dm
        ybox = dm.x_box0 - (dm.xy_cent_act_inPix[1, iact] -
                            dm.xy_cent_act_box[1, iact])*dx_dm
        inf_datacube[:, :, iact] = interp_spline(ybox, xbox)
    dm.inf_datacube = inf_datacube


def box_indices(dm, iact):
    """Row and column slices of actuator `iact`'s stamp in the DM array."""
    x0 = dm.xy_box_lowerLeft[0, iact]
    y0 = dm.xy_box_lowerLeft[1, iact]
    return slice(y0, y0 + dm.Nbox), slice(x0, x0 + dm.Nbox)


def surf_from_poke_cube(dm, V):
    """
    Produce a DM surface by superposing actuators from a datacube.

    Parameters
    ----------
    dm : corowfsc.config.Object
        DM record holding the influence datacube (`inf_datacube`, `Nbox`,
        `NdmPad`, `xy_box_lowerLeft`) and the gain map `VtoH`
    V : numpy ndarray
        2-D array of DM voltage commands

    Returns
    -------
    DMsurf : numpy ndarray
        2-D surface height map [meters], NdmPad x NdmPad
    """
    H = (np.asarray(V, dtype=float) *
         np.broadcast_to(dm.VtoH, np.shape(V))).ravel()

    DMsurf = np.zeros((dm.NdmPad, dm.NdmPad))
    for iact in np.flatnonzero(H):
        rows, cols = box_indices(dm, iact)
        DMsurf[rows, cols] += H[iact]*dm.inf_datacube[:, :, iact]

    if dm.get('fliplr', False):
        DMsurf = np.fliplr(DMsurf)
    if dm.get('flipud', False):
        DMsurf = np.flipud(DMsurf)

    return DMsurf


def gen_surf(dm, V, N):
    """
    Compute the surface height map of a DM for a voltage command.

    Parameters
    ----------
    dm : corowfsc.config.Object
        DM record with a computed influence datacube
    V : numpy ndarray or None
        2-D array of DM voltage commands. None means the DM is unused.
    N : int
        Number of points across the output array

    Returns
    -------
    numpy ndarray
        N x N surface height map [meters]
    """
    if V is None or not np.any(V):
        return np.zeros((N, N))
    return pad_crop(surf_from_poke_cube(dm, V), N)


def apply_neighbor_rule(Vin, Vlim, Nact):
    """
    Apply the neighbor rule to DM commands.

    Find neighboring actuators that exceed a specified difference in voltage
    and scale down those voltages until the rule is met. Each actuator is
    compared with its 8 neighbors.

    Parameters
    ----------
    Vin : numpy ndarray
        2-D array of DM voltage commands
    Vlim : float
        maximum difference in command values between neighboring actuators
    Nact : int
        Number of actuators across the DM

    Returns
    -------
    Vout : numpy ndarray
        2-D array of DM voltage commands
    indPair : numpy ndarray
        [nPairs x 2] array of tied actuator linear indices

    """
    Vin = check.twoD_array(Vin, 'Vin', TypeError)
    check.real_scalar(Vlim, 'Vlim', TypeError)
    check.positive_scalar_integer(Nact, 'Nact', TypeError)

    Vout = np.array(Vin, dtype=float)
    pairs = []

    # Each pair is visited once by only looking right and down.
    offsets = ((0, 1), (1, 1), (1, 0), (1, -1))
    for jj in range(Nact):  # row
        for ii in range(Nact):  # column
            for dr, dc in offsets:
                kr = jj + dr
                kc = ii + dc
                if not (0 <= kr < Nact and 0 <= kc < Nact):
                    continue

                a1 = Vout[jj, ii] - Vout[kr, kc]
                if np.abs(a1) > Vlim:
                    pairs.append((jj*Nact + ii, kr*Nact + kc))
                    fx = (np.abs(a1) - Vlim) / 2.
                    Vout[jj, ii] -= np.sign(a1)*fx
                    Vout[kr, kc] += np.sign(a1)*fx

    indPair = np.array(pairs, dtype=int).reshape((-1, 2))
    return Vout, indPair


def _max_neighbor_difference(V):
    """Largest command difference between adjacent or diagonal actuators."""
    diffs = (np.diff(V, axis=0), np.diff(V, axis=1),
             V[1:, 1:] - V[:-1, :-1], V[1:, :-1] - V[:-1, 1:])
    return max((np.max(np.abs(d)) for d in diffs if d.size > 0), default=0.)


def enforce_constraints(dm, V, maxNbrPasses=1000):
    """
    Enforce the constraints on DM actuator commands.

    1) Apply min/max bounds. Actuators reaching them are treated as pinned.
    2) Set commands for pinned, railed, or dead actuators.
    3) Relax neighbors that violate the neighbor rule.
    4) Set voltages for tied actuators.

    Steps 2-4 repeat until no neighbor pair is more than `dm.dVnbr` apart
    (to a relative tolerance of 1e-6), or `maxNbrPasses` passes. The pairs
    found by the neighbor rule are not added to `dm.tied`; the rule is
    re-applied to every new command instead.

    Parameters
    ----------
    dm : corowfsc.config.Object
        Structure containing parameter values for the DM. Not modified.
    V : numpy ndarray
        2-D array of DM voltage commands
    maxNbrPasses : int
        Maximum number of neighbor-rule passes

    Returns
    -------
    numpy ndarray
        New 2-D array of constrained DM voltage commands
    """
    Vflat = np.array(V, dtype=float).ravel()

    Vmin = dm.get('Vmin', -np.inf)
    Vmax = dm.get('Vmax', np.inf)
    pinned = np.asarray(dm.get('pinned', []), dtype=int).ravel()
    Vpinned = np.asarray(dm.get('Vpinned', []), dtype=float).ravel()
    tied = np.asarray(dm.get('tied', np.zeros((0, 2))), dtype=int)
    tied = tied.reshape((-1, 2))

    # 1) Actuators exceeding the bounds are pinned at the bound
    low = np.flatnonzero(Vflat < Vmin)
    high = np.flatnonzero(Vflat > Vmax)
    pinned = np.concatenate([pinned, low, high])
    Vpinned = np.concatenate([Vpinned, Vmin*np.ones(low.size),
                              Vmax*np.ones(high.size)])

    def pin_and_tie(Vflat):
        # 2) Pinned (or railed or dead) actuator values
        if pinned.size > 0:
            Vflat[pinned] = Vpinned
        # 4) The second actuator of each tied pair copies the first
        if tied.size > 0:
            Vflat[tied[:, 1]] = Vflat[tied[:, 0]]
        return Vflat

    Vout = pin_and_tie(Vflat).reshape(np.shape(V))

    # 3) Neighbor rule
    if dm.get('flagNbrRule', False):
        Vlim = dm.dVnbr
        nPairs = 0
        for iPass in range(maxNbrPasses):
            if _max_neighbor_difference(Vout) <= Vlim*(1 + 1e-6):
                break
            Vout, indPair = apply_neighbor_rule(Vout, Vlim, dm.Nact)
            nPairs += indPair.shape[0]
            Vout = pin_and_tie(Vout.ravel()).reshape(np.shape(V))
        else:
            log.warning('Neighbor rule not satisfied after %d passes.',
                        maxNbrPasses)
        if nPairs > 0:
            log.info('%d actuator pairs violated the neighbor rule.', nPairs)

    return Vout


def audit_voltage_limits(dm, V, dV, name='dm'):
    """
    Count commands that exceed the declared `maxAbsV` and `maxAbsdV` limits.

    The limits are declared in the configuration but not enforced: the
    commands are never clamped. Violations are logged.

    Parameters
    ----------
    dm : corowfsc.config.Object
        DM record with optional `maxAbsV` and `maxAbsdV`
    V : numpy ndarray
        Total voltage command
    dV : numpy ndarray
        Latest delta voltage command
    name : str
        Label used in the log message

    Returns
    -------
    int
        Number of actuators violating either limit
    """
    maxAbsV = dm.get('maxAbsV', None)
    maxAbsdV = dm.get('maxAbsdV', None)

    overV = np.zeros(np.shape(V), dtype=bool)
    overdV = np.zeros(np.shape(V), dtype=bool)
    if maxAbsV is not None:
        overV = np.abs(V) > maxAbsV
    if maxAbsdV is not None:
        overdV = np.abs(dV) > maxAbsdV

    if np.any(overV):
        log.warning('%s: %d actuators exceed maxAbsV = %.4g (not clamped).',
                    name, np.sum(overV), maxAbsV)
    if np.any(overdV):
        log.warning('%s: %d actuators exceed maxAbsdV = %.4g (not clamped).',
                    name, np.sum(overdV), maxAbsdV)

    return int(np.sum(overV | overdV))


def fit_surf_to_act(dm, surfaceToFit):
    """
    Compute the actuator heights that best fit a given surface.

    The surface must be sampled at one point per actuator, i.e. be
    Nact x Nact. The fit deconvolves the influence function resampled to
    the actuator pitch.

    Parameters
    ----------
    dm : corowfsc.config.Object
        DM record with `Nact`, `inf0`, `dx_inf0` and `dm_spacing`
    surfaceToFit : numpy ndarray
        2-D array of the surface heights for the DM to fit [meters]

    Returns
    -------
    Hout : numpy ndarray
        2-D array of actuator heights [meters]. Divide by `dm.VtoH` to get
        voltages.
    """
    surfaceToFit = check.twoD_square_array(surfaceToFit, 'surfaceToFit',
                                           TypeError)
    if surfaceToFit.shape[0] != dm.Nact:
        raise ValueError('surfaceToFit must be of size Nact x Nact.')

    inf1 = dm.inf0
    N1 = inf1.shape[0]
    actres1 = dm.dm_spacing/dm.dx_inf0  # pixels per actuator pitch
    x = np.linspace(-(N1-1.)/2., (N1-1.)/2., N1)/actres1

    # Influence function resampled to one pixel per actuator. Odd-sized so
    # that its peak is on a pixel.
    N2 = ceil_even(N1/actres1) + 1
    xq = np.linspace(-(N2-1)/2., (N2-1)/2., N2)
    infFuncAtActRes = RectBivariateSpline(x, x, inf1)(xq, xq)

    Hout, _ = proper.prop_fit_dm(surfaceToFit, infFuncAtActRes)
    return Hout
