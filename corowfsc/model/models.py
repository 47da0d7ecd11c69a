"""Compact and full diffractive optical models."""
import copy
import logging

import numpy as np
import proper

from corowfsc import check, dm, prop
from corowfsc.check import ConfigurationError
from corowfsc.coronagraph import get_variant
from corowfsc.util import pad_crop

log = logging.getLogger(__name__)

MIRROR_FAC = 2.  # Phase change is twice the DM surface height.


def _tip_tilt(XsDL, YsDL, xiOffset, etaOffset, wvl, lambda0):
    """Phase ramp for a source offset given in lambda0/D."""
    TTphase = (-1)*(2*np.pi*(xiOffset*XsDL + etaOffset*YsDL))
    return np.exp(1j*TTphase*lambda0/wvl)


def compact_input_field(mp, modvar, wvl, normFac):
    """
    Input E-field at P1 for the compact model.

    Includes the star position and weight, the off-axis source offset for
    `modvar.whichSource == 'offaxis'`, and the normalization source offset
    when `normFac` is zero.
    """
    P2 = mp.P2.compact
    iStar = modvar.starIndex
    Ein = np.sqrt(mp.compact.star.weights[iStar]) * \
        _tip_tilt(P2.XsDL, P2.YsDL, mp.compact.star.xiOffsetVec[iStar],
                  mp.compact.star.etaOffsetVec[iStar], wvl, mp.lambda0) * \
        mp.P1.compact.E[:, :, modvar.sbpIndex]

    if modvar.whichSource.lower() == 'offaxis':
        Ein = Ein * _tip_tilt(P2.XsDL, P2.YsDL, modvar.x_offset,
                              modvar.y_offset, wvl, mp.lambda0)

    if normFac == 0:
        Ein = Ein * _tip_tilt(P2.XsDL, P2.YsDL, mp.source_x_offset_norm,
                              mp.source_y_offset_norm, wvl, mp.lambda0)
    return Ein


def compact(mp, state, modvar, isNorm=True, isEvalMode=False):
    """
    Simplified (aka compact) model used by estimator and controller.

    Does not include unknown aberrations of the full, "truth" model.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and normalization factors
    modvar : ModelVariables
        Sub-band, star and source selection
    isNorm : bool
        If False, return an unnormalized field. If True, return a field
        normalized with the currently stored normalization value.
    isEvalMode : bool
        If set, uses a higher resolution in the focal plane for
        measuring performance metrics such as throughput.

    Returns
    -------
    Eout : numpy ndarray
        2-D electric field in final focal plane

    """
    if not isNorm:
        normFac = 0.
    else:
        I00 = state.I00eval if isEvalMode else state.I00compact
        if I00 is None:
            raise ValueError('PSF normalization has not been computed. Call '
                             'corowfsc.imaging.calc_psf_norm_factor first.')
        normFac = I00[modvar.sbpIndex]

    wvl = modvar.get('wvl', mp.sbp_centers[modvar.sbpIndex])
    Ein = compact_input_field(mp, modvar, wvl, normFac)

    return compact_general(mp, state, wvl, Ein, normFac, isEvalMode)


def compact_general(mp, state, wvl, Ein, normFac, flagEval):
    """
    Compact model with a general-purpose optical layout.

    Propagates P1 -> DM1 -> DM2 -> P3 -> focal-plane stage -> P4 -> camera.
    The result only depends on the arguments; nothing is stored.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands
    wvl : float
        Wavelength of light [meters]
    Ein : numpy ndarray
        2-D input electric field
    normFac : float
        Intensity normalization factor. Zero gives the unocculted field.
    flagEval : bool
        Whether to use a higher resolution in final image plane for evaluation.

    Returns
    -------
    Eout : numpy ndarray
        2-D electric field in final focal plane

    """
    check.is_bool(flagEval, 'flagEval')
    return _propagate(mp, state, wvl, Ein, normFac, flagEval, 'compact')


def full_fourier(mp, state, wvl, Ein, normFac):
    """Full model with the same Fourier layout as the compact model."""
    return _propagate(mp, state, wvl, Ein, normFac, False, 'full')


def _dm_record(mp, idm, model):
    return mp['dm%d' % idm].compact if model == 'compact' else mp['dm%d' % idm]


def _dm_surface(mp, state, idm, model, N):
    if np.any(mp.dm_ind == idm):
        return dm.gen_surf(_dm_record(mp, idm, model), state.command(idm), N)
    return np.zeros((N, N))


def _dm_stop(mp, idm, model, N):
    if mp['flagDM%dstop' % idm]:
        return pad_crop(mp['dm%d' % idm][model].mask, N)
    return np.ones((N, N))


def _propagate(mp, state, wvl, Ein, normFac, flagEval, model):
    NdmPad = int(mp[model].NdmPad)
    NrelayFactor = 1 if mp.flagRotation else 0
    P2 = mp.P2[model]
    P4 = mp.P4[model]
    Fend = mp.Fend.eval if flagEval else mp.Fend

    DM1surf = _dm_surface(mp, state, 1, model, NdmPad)
    DM2surf = _dm_surface(mp, state, 2, model, NdmPad)
    DM1stop = _dm_stop(mp, 1, model, NdmPad)
    DM2stop = _dm_stop(mp, 2, model, NdmPad)

    pupil = pad_crop(mp.P1[model].mask, NdmPad)
    Ein = pad_crop(Ein, NdmPad)

    # Entrance pupil P1 to pupil P2
    EP1 = check.finite_field(pupil*Ein, 'P1')
    EP2 = prop.relay(EP1, NrelayFactor*mp.Nrelay1to2, mp.centering)

    # P2 to DM1, then DM1 to DM2
    if mp.d_P2_dm1 != 0:
        Edm1 = prop.ptp(EP2, P2.dx*NdmPad, wvl, mp.d_P2_dm1)
    else:
        Edm1 = EP2
    Edm1 = check.finite_field(Edm1, 'DM1')
    Edm1 = Edm1*DM1stop*np.exp(MIRROR_FAC*2*np.pi*1j*DM1surf/wvl)

    Edm2 = check.finite_field(
        prop.ptp(Edm1, P2.dx*NdmPad, wvl, mp.d_dm1_dm2), 'DM2')
    Edm2 = Edm2*DM2stop*np.exp(MIRROR_FAC*2*np.pi*1j*DM2surf/wvl)

    # Back-propagate to pupil P2
    d_P2_dm2 = mp.d_P2_dm1 + mp.d_dm1_dm2
    if d_P2_dm2 != 0:
        EP2eff = prop.ptp(Edm2, P2.dx*NdmPad, wvl, -d_P2_dm2)
    else:
        EP2eff = Edm2

    # Re-image to pupil P3 and apply the apodizer
    EP3 = prop.relay(EP2eff, NrelayFactor*mp.Nrelay2to3, mp.centering)
    if mp.flagApod:
        EP3 = mp.P3[model].mask*pad_crop(EP3, mp.P3[model].Narr)
    EP3 = check.finite_field(EP3, 'P3')

    # P3 to P4 depends on the coronagraph type
    EP4 = get_variant(mp.coro).apply_focal_plane_stage(EP3, wvl, normFac, mp,
                                                        model)
    EP4 = check.finite_field(EP4, 'P4')

    # Lyot stop, then MFT to the camera
    EP4 = P4.croppedMask*EP4
    EP4 = prop.relay(EP4, NrelayFactor*mp.NrelayFend, mp.centering)
    EFend = prop.mft_p2f(EP4, mp.fl, wvl, P4.dx, Fend.dxi, Fend.Nxi,
                         Fend.deta, Fend.Neta, mp.centering)
    EFend = check.finite_field(EFend, 'Fend')

    if normFac == 0:
        return EFend
    return EFend/np.sqrt(normFac)


def full(mp, state, modvar, isNorm=True):
    """
    Truth model used to generate images in simulation.

    Can include aberrations or errors that are unknown to the estimator and
    controller.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and normalization factors
    modvar : ModelVariables
        Sub-band, wavelength, star and source selection
    isNorm : bool
        If False, return an unnormalized field. If True, return a
        normalized field with the currently stored normalization value.

    Returns
    -------
    Eout : numpy ndarray
        2-D electric field in final focal plane
    """
    if isNorm:
        if state.I00full is None:
            raise ValueError('PSF normalization has not been computed. Call '
                             'corowfsc.imaging.calc_psf_norm_factor first.')
        normFac = state.I00full[modvar.sbpIndex, modvar.wpsbpIndex]
    else:
        normFac = 0

    if 'wvl' in modvar:
        wvl = modvar.wvl
    else:
        wvl = mp.full.lambdasMat[modvar.sbpIndex, modvar.wpsbpIndex]

    P2 = mp.P2.full
    iStar = modvar.starIndex
    Ein = np.sqrt(mp.star.weights[iStar]) * \
        _tip_tilt(P2.XsDL, P2.YsDL, mp.star.xiOffsetVec[iStar],
                  mp.star.etaOffsetVec[iStar], wvl, mp.lambda0) * \
        mp.P1.full.E[:, :, modvar.wpsbpIndex, modvar.sbpIndex]

    if modvar.whichSource.lower() == 'offaxis':
        Ein = Ein * _tip_tilt(P2.XsDL, P2.YsDL, modvar.x_offset,
                              modvar.y_offset, wvl, mp.lambda0)

    layout = mp.layout.lower()
    if layout == 'fourier':
        if normFac == 0:
            Ein = Ein * _tip_tilt(P2.XsDL, P2.YsDL, mp.source_x_offset_norm,
                                  mp.source_y_offset_norm, wvl, mp.lambda0)
        return full_fourier(mp, state, wvl, Ein, normFac)

    elif layout == 'proper':
        return full_proper(mp, state, wvl, normFac,
                           polaxis=modvar.get('polaxis', 0))

    raise ConfigurationError('Unknown optical layout "%s".' % mp.layout)


def full_proper(mp, state, wvl, normFac, polaxis=0):
    """
    Run the PROPER prescription of the full model.

    The prescription named by `mp.full.prescription` receives the fields of
    `mp.full` plus the DM surfaces as its PASSVALUE dictionary.
    """
    optval = copy.copy(dict(mp.full.data))
    optval['polaxis'] = polaxis

    for idm in (1, 2):
        if np.any(mp.dm_ind == idm):
            dmX = mp['dm%d' % idm]
            optval['use_dm%d' % idm] = True
            optval['dm%d' % idm] = state.command(idm)*dmX.VtoH + \
                mp.full.get('dm%dFlatMap' % idm, 0.)

    if normFac == 0:
        optval['xoffset'] = -mp.source_x_offset_norm
        optval['yoffset'] = -mp.source_y_offset_norm
        optval['use_fpm'] = False

    # PROPER takes the wavelength in microns
    Eout, sampling_m = proper.prop_run(mp.full.prescription, wvl*1e6,
                                       mp.P1.full.Narr, QUIET=True,
                                       PASSVALUE=optval)
    log.debug('PROPER output sampling: %.4g m', sampling_m)
    Eout = check.finite_field(Eout, 'Fend')

    if normFac == 0:
        return Eout
    return Eout/np.sqrt(normFac)
