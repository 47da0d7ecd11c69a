"""Functions for generating images and normalizations."""
from concurrent.futures import ThreadPoolExecutor as PoolExecutor
import logging

import numpy as np

from corowfsc import check
from corowfsc.config import ModelVariables
from corowfsc import model

log = logging.getLogger(__name__)


def add_noise_to_subband_image(mp, imageIn, iSubband):
    """
    Add noise (photon shot, dark current, & read) to a simulated image.

    Parameters
    ----------
    mp : ModelParameters
        structure of model parameters.
    imageIn : array_like
        2-D noiseless starting image for a given subband [normalized intensity]
    iSubband : int
        index of subband in which the image was taken

    Returns
    -------
    imageOut : array_like
        2-D noisy image [normalized intensity]
    """
    check.twoD_array(imageIn, 'imageIn', ValueError)
    check.nonnegative_scalar_integer(iSubband, 'iSubband', ValueError)

    peakCounts = (mp.detector.peakFluxVec[iSubband] *
                  mp.detector.tExpVec[iSubband])
    peakElectrons = mp.detector.gain * peakCounts
    imageInElectrons = peakElectrons * imageIn

    imageInCounts = 0
    for iExp in range(mp.detector.Nexp):

        # Add photon shot noise
        noisyImageInElectrons = np.random.poisson(imageInElectrons)

        darkCurrent = np.random.poisson(mp.detector.darkCurrentRate *
                                        mp.detector.tExpVec[iSubband] *
                                        np.ones_like(imageIn))

        readNoise = (mp.detector.readNoiseStd *
                     np.random.randn(imageIn.shape[0], imageIn.shape[1]))

        # Convert back from e- to counts and then discretize
        imageInCounts = (imageInCounts +
                         np.round((noisyImageInElectrons +
                                   darkCurrent + readNoise) /
                                  mp.detector.gain)/mp.detector.Nexp)

    # Convert back from counts to normalized intensity
    return imageInCounts / peakCounts


def calc_psf_norm_factor(mp, state):
    """
    Compute the intensity normalization factor of each model and sub-band.

    The factor is the peak intensity of the unocculted PSF of the first star.
    Results are stored in `state.I00compact`, `state.I00eval` (both of shape
    (Nsbp,)) and `state.I00full` (shape (Nsbp, Nwpsbp)).

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        Current DM commands. Updated in place.

    Returns
    -------
    None
    """
    I00compact = np.ones(mp.Nsbp)
    I00eval = np.ones(mp.Nsbp)
    I00full = np.ones((mp.Nsbp, mp.Nwpsbp))

    # Always use first star for image normalization
    modvar = ModelVariables(starIndex=0, whichSource='star')

    for si in range(mp.Nsbp):
        modvar.sbpIndex = si
        Ecompact = model.compact(mp, state, modvar, isNorm=False)
        I00compact[si] = np.max(np.abs(Ecompact)**2)

        Eeval = model.compact(mp, state, modvar, isNorm=False,
                              isEvalMode=True)
        I00eval[si] = np.max(np.abs(Eeval)**2)

    # Full model normalizations at every wavelength
    inds_list = [(si, wi) for si in range(mp.Nsbp) for wi in range(mp.Nwpsbp)]
    if mp.flagParallel:
        with PoolExecutor(max_workers=mp.Nthreads) as executor:
            result = executor.map(
                lambda p: _model_full_norm_wrapper(*p),
                [(mp, state, si, wi) for si, wi in inds_list]
            )
        I00list = tuple(result)
    else:
        I00list = [_model_full_norm_wrapper(mp, state, si, wi)
                   for si, wi in inds_list]

    for (si, wi), I00 in zip(inds_list, I00list):
        I00full[si, wi] = I00

    state.I00compact = I00compact
    state.I00eval = I00eval
    state.I00full = I00full
    log.debug('Compact model normalizations: %s', I00compact)


def _model_full_norm_wrapper(mp, state, si, wi):
    """Use only with calc_psf_norm_factor for parallel processing."""
    modvar = ModelVariables(sbpIndex=si, wpsbpIndex=wi, starIndex=0,
                            whichSource='star')
    Etemp = model.full(mp, state, modvar, isNorm=False)
    return np.max(np.abs(Etemp)**2)


def get_summed_image(mp, state):
    """
    Get the broadband image over the entire bandpass.

    Get a broadband image over the entire bandpass by getting the sub-bandpass
    images and doing a weighted sum.

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        Current DM commands and normalizations

    Returns
    -------
    summedImage : numpy ndarray
        band-averaged image in units of normalized intensity
    """
    summedImage = 0
    for si in range(mp.Nsbp):
        summedImage += mp.sbp_weights[si] * get_sbp_image(mp, state, si)
    return summedImage


def get_sbp_image(mp, state, si):
    """
    Get a simulated image in the specified sub-bandpass.

    Sums the full-model intensity over the wavelengths, polarization states
    and stars of the sub-band.

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        Current DM commands and normalizations
    si : int
        Index of sub-bandpass for which to take the image

    Returns
    -------
    subbandImage : numpy ndarray
        Simulated sub-bandpass image in units of normalized intensity
    """
    check.nonnegative_scalar_integer(si, 'si', TypeError)

    pol_conds = mp.full.get('pol_conds', [0])
    inds_list = [(wi, pol, iStar) for wi in range(mp.Nwpsbp)
                 for pol in pol_conds for iStar in range(mp.star.count)]

    if mp.flagParallel:
        with PoolExecutor(max_workers=mp.Nthreads) as executor:
            result = executor.map(
                lambda p: _get_subband_image_component(*p),
                [(mp, state, si) + inds for inds in inds_list]
            )
        results = tuple(result)
    else:
        results = [_get_subband_image_component(mp, state, si, *inds)
                   for inds in inds_list]

    subbandImage = 0
    for Icomponent in results:
        subbandImage += Icomponent

    if mp.get('flagImageNoise', False):
        subbandImage = add_noise_to_subband_image(mp, subbandImage, si)

    return subbandImage


def _get_subband_image_component(mp, state, si, wi, pol, iStar):
    """
    Use only with get_sbp_image.

    Return the weighted, normalized intensity image at one wavelength,
    polarization state and star. Polarizations are evenly weighted.
    """
    modvar = ModelVariables(sbpIndex=si, wpsbpIndex=wi, starIndex=iStar,
                            whichSource='star', polaxis=pol)
    Estar = model.full(mp, state, modvar)
    Npol = len(mp.full.get('pol_conds', [0]))
    return mp.full.lambda_weights[wi]/Npol*np.abs(Estar)**2


def get_expected_summed_image(mp, state, cvar, dDM):
    """
    Generate the expected broadband image after a new DM command.

    Adds the model-based change of the electric field to the current E-field
    estimate in each Jacobian mode.

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        DM commands before the update
    cvar : Object
        Structure of controller variables. Uses `cvar.Eest`.
    dDM : Object
        Delta DM commands `dDM1V`, `dDM2V` from the controller

    Returns
    -------
    Ibandavg : numpy ndarray
        Expected bandpass-averaged image in units of normalized intensity
    """
    newState = state
    for idm in mp.dm_ind:
        key = 'dDM%dV' % idm
        if key in dDM:
            newState = newState.with_command(idm,
                                             state.command(idm) + dDM[key])

    Ibandavg = 0
    for im in range(mp.jac.Nmode):
        modvar = ModelVariables(sbpIndex=mp.jac.sbp_inds[im],
                                starIndex=mp.jac.star_inds[im],
                                whichSource='star')
        Enew = model.compact(mp, newState, modvar)[mp.Fend.corr.maskBool]
        Eold = model.compact(mp, state, modvar)[mp.Fend.corr.maskBool]

        Eexpected2D = np.zeros((mp.Fend.Neta, mp.Fend.Nxi), dtype=complex)
        Eexpected2D[mp.Fend.corr.maskBool] = cvar.Eest[:, im] + (Enew - Eold)
        Ibandavg += mp.sbp_weights[modvar.sbpIndex]*np.abs(Eexpected2D)**2

    return Ibandavg


def get_sim_offaxis_image_compact(mp, state, x_offset, y_offset,
                                  isEvalMode=False):
    """
    Return the broadband intensity of an off-axis source from the compact model.

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        Current DM commands and normalizations
    x_offset : float
        lateral offset (in xi) of the PSF in the focal plane. [lambda0/D]
    y_offset : float
        vertical offset (in eta) of the PSF in the focal plane. [lambda0/D]
    isEvalMode : bool
       Switch that tells function to run at a higher final focal plane
       resolution when evaluating throughput.

    Returns
    -------
    Iout : numpy ndarray
        Simulated bandpass-averaged intensity from the compact model
    """
    check.real_scalar(x_offset, 'x_offset', TypeError)
    check.real_scalar(y_offset, 'y_offset', TypeError)
    check.is_bool(isEvalMode, 'isEvalMode')

    modvar = ModelVariables(whichSource='offaxis', x_offset=x_offset,
                            y_offset=y_offset)

    Iout = 0.
    for iStar in range(mp.compact.star.count):
        modvar.starIndex = iStar
        for si in range(mp.Nsbp):
            modvar.sbpIndex = si
            E2D = model.compact(mp, state, modvar, isEvalMode=isEvalMode)
            Iout += mp.sbp_weights[si]*np.abs(E2D)**2

    return Iout


def calc_thput(mp, state):
    """
    Calculate the off-axis throughput of the coronagraph.

    The metric is chosen by `mp.thput_metric`: 'HMI' sums the energy within
    the half-max isophote(s), 'EE' the energy within `mp.thput_radius` of the
    source.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and normalizations

    Returns
    -------
    thput : float
        Off-axis throughput of the coronagraph at the specified field location.
    ImSimOffaxis : numpy ndarray
        Off-axis PSF at the evaluation resolution.
    """
    ImSimOffaxis = get_sim_offaxis_image_compact(
        mp, state, mp.thput_eval_x, mp.thput_eval_y, isEvalMode=True)

    metric = mp.thput_metric.lower()
    if metric == 'hmi':
        maskHM = ImSimOffaxis >= 0.5*np.max(ImSimOffaxis)
        thput = (np.sum(ImSimOffaxis[maskHM]) / mp.sumPupil *
                 np.mean(state.I00eval))
        log.info('Core throughput within the half-max isophote(s) = %.2f%% '
                 'at separation = (%.1f, %.1f) lambda0/D.',
                 100*thput, mp.thput_eval_x, mp.thput_eval_y)

    elif metric in ('ee', 'e.e.'):
        RHOS = np.hypot(mp.Fend.eval.XIS - mp.thput_eval_x,
                        mp.Fend.eval.ETAS - mp.thput_eval_y)
        maskEE = RHOS <= mp.thput_radius
        thput = (np.sum(ImSimOffaxis[maskEE]) / mp.sumPupil *
                 np.mean(state.I00eval))
        log.info('E.E. throughput within a %.2f lambda/D radius = %.2f%% '
                 'at separation = (%.1f, %.1f) lambda/D.',
                 mp.thput_radius, 100*thput, mp.thput_eval_x,
                 mp.thput_eval_y)

    else:
        raise ValueError('Unknown throughput metric "%s".' % mp.thput_metric)

    return thput, ImSimOffaxis


def _offset_peak(mp, state, xi, eta):
    """Use only with contrast_to_ni_map."""
    modvar = ModelVariables(sbpIndex=mp.si_ref, wpsbpIndex=mp.wi_ref,
                            whichSource='offaxis', x_offset=xi, y_offset=eta)
    E2D = model.compact(mp, state, modvar)
    return np.max(np.abs(E2D)**2)


def contrast_to_ni_map(mp, state):
    """
    Compute the map that converts normalized intensity to contrast.

    Gets the peak intensity of an off-axis source centered on each
    first-quadrant pixel of the correction region at the reference
    wavelength, mirrors that quadrant into the other three, and normalizes
    by the largest peak. Zeros are replaced by 1e-10 so that the map can be
    divided by.

    Parameters
    ----------
    mp : ModelParameters
        Structure of model parameters
    state : LoopState
        Current DM commands and normalizations

    Returns
    -------
    CtoNI : numpy ndarray
        2-D map of the same shape as the final focal plane.
    """
    XIS, ETAS = np.meshgrid(mp.Fend.xisDL, mp.Fend.etasDL)
    maskBoolQuad1 = mp.Fend.corr.maskBool & (XIS >= 0) & (ETAS >= 0)
    coords = list(zip(XIS[maskBoolQuad1], ETAS[maskBoolQuad1]))
    log.info('Computing off-axis peaks at %d pixels...', len(coords))

    if mp.flagParallel:
        with PoolExecutor(max_workers=mp.Nthreads) as executor:
            result = executor.map(lambda p: _offset_peak(*p),
                                  [(mp, state, xi, eta) for xi, eta in coords])
        peakVals = np.array(tuple(result))
    else:
        peakVals = np.array([_offset_peak(mp, state, xi, eta)
                             for xi, eta in coords])

    Neta, Nxi = XIS.shape
    peak2D = np.zeros(XIS.shape)
    peak2D[maskBoolQuad1] = peakVals
    # Fill in quadrant 4, then quadrants 2 and 3
    peak2D[1:Neta//2, :] = np.flipud(peak2D[Neta//2+1:, :])
    peak2D[:, 1:Nxi//2] = np.fliplr(peak2D[:, Nxi//2+1:])

    CtoNI = peak2D/np.max(peakVals)
    CtoNI[CtoNI == 0] = 1e-10
    return CtoNI
