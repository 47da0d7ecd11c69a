"""Estimation functions for WFSC."""
from concurrent.futures import ThreadPoolExecutor as PoolExecutor
import logging

import numpy as np

from corowfsc import check, dm, imaging, model
from corowfsc.check import ConfigurationError
from corowfsc.config import Object, ModelVariables

log = logging.getLogger(__name__)


def wrapper(mp, state, jacStruct=None):
    """
    Estimate the dark hole E-field with the selected estimator.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and normalizations
    jacStruct : Object, optional
        Control Jacobian. Used only when `mp.est.flagUseJac` is set.

    Returns
    -------
    ev : Object
        Contains `Eest`, the complex field at the correction-region pixels
        for each Jacobian mode, of shape (mp.Fend.corr.Npix, mp.jac.Nmode),
        and `IincoEst`, the incoherent intensity of the same shape.
    """
    estimator = mp.estimator.lower()
    if estimator == 'perfect':
        ev = Object()
        ev.Eest = perfect(mp, state)
        ev.IincoEst = np.zeros(ev.Eest.shape)
    elif estimator == 'pwp-bp':
        ev = pairwise_probing(mp, state, jacStruct)
    else:
        raise ConfigurationError('Unknown estimator "%s".' % mp.estimator)
    return ev


def perfect(mp, state):
    """
    Return the perfect-knowledge E-field.

    Uses the full model when `mp.est.flagUseFull` is set, averaging over the
    wavelengths of each sub-band with their spectral weights. Otherwise uses
    the compact model at the sub-band centers.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and normalizations

    Returns
    -------
    Emat : numpy ndarray
        2-D array with the vectorized, complex E-field of the dark hole pixels
        for each mode included in the control Jacobian.
    """
    flagUseFull = mp.est.get('flagUseFull', True)
    Nwpsbp = mp.Nwpsbp if flagUseFull else 1

    # Loop over all modes and wavelengths
    inds_list = [(im, wi) for im in range(mp.jac.Nmode)
                 for wi in range(Nwpsbp)]

    if mp.flagParallel:
        with PoolExecutor(max_workers=mp.Nthreads) as executor:
            result = executor.map(
                lambda p: _perfect_field_component(*p),
                [(mp, state, im, wi, flagUseFull) for im, wi in inds_list]
            )
        results = tuple(result)
    else:
        results = [_perfect_field_component(mp, state, im, wi, flagUseFull)
                   for im, wi in inds_list]

    Emat = np.zeros((mp.Fend.corr.Npix, mp.jac.Nmode), dtype=complex)
    for (im, wi), Evec in zip(inds_list, results):
        Emat[:, im] += Evec

    return Emat


def _perfect_field_component(mp, state, im, wi, flagUseFull):
    """Spectrally weighted field of one mode and wavelength."""
    modvar = ModelVariables(sbpIndex=mp.jac.sbp_inds[im], wpsbpIndex=wi,
                            starIndex=mp.jac.star_inds[im],
                            whichSource='star')
    if flagUseFull:
        E2D = model.full(mp, state, modvar)
        return mp.full.lambda_weights[wi]*E2D[mp.Fend.corr.maskBool]

    E2D = model.compact(mp, state, modvar)
    return E2D[mp.Fend.corr.maskBool]


def _probe_phases(Npairs):
    """Probe phases evenly spaced around the complex unit circle."""
    probePhaseVec = np.array([0, Npairs])
    for k in range(Npairs-1):
        probePhaseVec = np.append(probePhaseVec, probePhaseVec[-1]-(Npairs-1))
        probePhaseVec = np.append(probePhaseVec, probePhaseVec[-1]+Npairs)
    return probePhaseVec*np.pi/Npairs


def _bad_axes(axis, Nprobes):
    axis = axis.lower()
    if axis in ('x', 'y'):
        return axis*Nprobes
    elif axis in ('alt', 'xy', 'alternate'):
        return ''.join('x' if iProbe % 4 in (0, 1) else 'y'
                       for iProbe in range(Nprobes))
    raise ConfigurationError('Incorrect value for mp.est.probe.axis: %s'
                             % axis)


def pairwise_probing(mp, state, jacStruct=None):
    """
    Estimate the dark hole E-field with batch-process pair-wise probing.

    For each sub-band, takes an unprobed image and `Npairs` pairs of
    images with +/- probe shapes on the probing DM. The probe field at each
    pixel comes from the compact model (or from the Jacobian when
    `mp.est.flagUseJac` is set), and the field is the per-pixel least-squares
    solution. Pixels with fewer than two probe pairs of nonzero amplitude are
    left at zero.

    Parameters
    ----------
    mp : ModelParameters
        Object containing all model parameters.
    state : LoopState
        Current DM commands and normalizations. Not modified.
    jacStruct : Object, optional
        Control Jacobian, needed when `mp.est.flagUseJac` is set.

    Returns
    -------
    ev : Object
        Estimate (`Eest`, `IincoEst`), the image cube `Icube`, and summary
        statistics of the probing.
    """
    probe = mp.est.probe
    whichDM = probe.whichDM
    if whichDM not in (1, 2):
        raise ConfigurationError('mp.est.probe.whichDM must equal 1 or 2.')
    dmProbe = mp['dm%d' % whichDM]
    flagUseJac = mp.est.get('flagUseJac', False)
    if flagUseJac and jacStruct is None:
        raise ValueError('A Jacobian is needed when mp.est.flagUseJac is set.')

    Vnom = state.command(whichDM)
    Npairs = probe.Npairs
    Npix = mp.Fend.corr.Npix
    maskBool = mp.Fend.corr.maskBool
    probePhaseVec = _probe_phases(Npairs)
    badAxisVec = _bad_axes(probe.axis, 2*Npairs)

    ev = Object()
    ev.Icube = np.zeros((mp.Fend.Neta, mp.Fend.Nxi, 1+2*Npairs, mp.Nsbp))
    ev.Eest = np.zeros((Npix, mp.Nsbp), dtype=complex)
    ev.IincoEst = np.zeros((Npix, mp.Nsbp))
    ev.I0mean = 0
    ev.IprobedMean = 0

    log.info('Estimating electric field with batch process estimation ...')
    for si in range(mp.Nsbp):
        log.info('Wavelength: %d/%d ... ', si, mp.Nsbp-1)
        modvar = ModelVariables(sbpIndex=si, whichSource='star')

        I0 = imaging.get_sbp_image(mp, state, si)
        I0vec = I0[maskBool]
        ev.I0mean = ev.I0mean + I0/mp.Nsbp
        ev.Icube[:, :, 0, si] = I0
        ev.InormCorr = np.mean(I0vec)
        ev.InormScore = np.mean(I0[mp.Fend.score.maskBool])
        log.info('Measured unprobed Inorm (Corr / Score): %.2e \t%.2e',
                 ev.InormCorr, ev.InormScore)

        # Set (approximate) probe intensity based on current measured Inorm
        if 'InormProbe' in mp.est:
            InormProbe = mp.est.InormProbe
        else:
            InormProbe = np.min([np.sqrt(np.max(I0vec)*1e-5),
                                 probe.InormProbeMax])
        log.info('Chosen probe intensity: %.2e', InormProbe)

        Iplus = np.zeros((Npix, Npairs))
        Iminus = np.zeros((Npix, Npairs))
        dVplus = []
        probedStates = []
        for iProbe in range(2*Npairs):
            probeCmd = gen_pairwise_probe(mp, InormProbe,
                                          probePhaseVec[iProbe],
                                          badAxisVec[iProbe])
            dVprobe = probeCmd/dmProbe.VtoH  # Now in volts
            probed = state.with_command(whichDM, Vnom + dVprobe)

            Im = imaging.get_sbp_image(mp, probed, si)
            ev.Icube[:, :, 1+iProbe, si] = Im
            ev.IprobedMean = ev.IprobedMean + \
                np.mean(Im[maskBool])/(2*Npairs)/mp.Nsbp
            log.info('Actual Probe %d%s Contrast is: %.2e', iProbe//2,
                     '+-'[iProbe % 2], np.mean(Im[maskBool]))

            if iProbe % 2 == 0:
                Iplus[:, iProbe//2] = Im[maskBool]
                dVplus.append(dVprobe)
            else:
                Iminus[:, iProbe//2] = Im[maskBool]
            probedStates.append(probed)

        # Probe amplitudes and measurement vector (Give'on+ SPIE 2011)
        ampSq = (Iplus + Iminus)/2 - I0vec.reshape((-1, 1))
        ampSq[ampSq < 0] = 0
        amp = np.sqrt(ampSq)
        isgood = amp > 0
        zAll = ((Iplus - Iminus)/4).T  # shape (Npairs, Npix)
        for iPair in range(Npairs):
            log.debug('Mean measured Inorm for probe #%d = %.3e', iPair,
                      np.mean(ampSq[:, iPair]))

        if flagUseJac:
            G = jacStruct['G%d' % whichDM][:, :, si]
            act_ele = state.act_ele(whichDM)
            dEplus = np.zeros((Npix, Npairs), dtype=complex)
            for iPair in range(Npairs):
                dEplus[:, iPair] = G @ dVplus[iPair].ravel()[act_ele]
        else:
            # Probe phase from the model
            dphdm = np.zeros((Npix, Npairs))
            for iPair in range(Npairs):
                Eplus = model.compact(mp, probedStates[2*iPair],
                                      modvar)[maskBool]
                Eminus = model.compact(mp, probedStates[2*iPair+1],
                                       modvar)[maskBool]
                dphdm[:, iPair] = np.angle(Eplus - Eminus)

        # Batch process the measurements pixel by pixel
        Eest = np.zeros((Npix,), dtype=complex)
        zerosCounter = 0
        for ipix in range(Npix):
            if flagUseJac:
                dE = dEplus[ipix, :]
                H = np.array([np.real(dE), np.imag(dE)]).T
            elif np.sum(isgood[ipix, :]) >= 2:
                good = isgood[ipix, :]
                H = amp[ipix, good].reshape((-1, 1)) * \
                    np.array([np.cos(dphdm[ipix, good]),
                              np.sin(dphdm[ipix, good])]).T
            else:
                zerosCounter += 1
                continue

            if flagUseJac:
                Epix = np.linalg.pinv(H) @ zAll[:, ipix]
            else:
                Epix = np.linalg.pinv(H) @ zAll[good, ipix]
            Eest[ipix] = Epix[0] + 1j*Epix[1]

        # An estimate this bright was probably bad.
        Eest[np.abs(Eest)**2 > mp.est.get('Ithreshold', 1e-2)] = 0.0
        log.info('%d of %d pixels were given zero probe amplitude.',
                 zerosCounter, Npix)

        ev.Eest[:, si] = Eest
        ev.IincoEst[:, si] = I0vec - np.abs(Eest)**2

    ev.ampSqMean = np.mean(ampSq)
    ev.ampNorm = amp/np.sqrt(InormProbe)
    ev.InormEst = np.mean(np.abs(ev.Eest)**2)
    log.info('Completed pairwise probing estimation.')

    return ev


def gen_pairwise_probe(mp, InormDes, psi, badAxis):
    """
    Generate delta DM commands that probe the dark hole.

    The probe is a sinc-sinc-sine surface that fills a square region of
    half-width `mp.est.probe.radius` in the focal plane, with its phase
    discontinuity along `badAxis`. A zero phase `psi` gives the sincs only.

    Parameters
    ----------
    mp : ModelParameters
        Object containing all model parameters.
    InormDes : float
        Desired normalized intensity of the probes in the image.
    psi : float
        phase angle of the sinusoidal part of the probe. Units of radians.
    badAxis : str
        Axis of the phase discontinuity, 'x' or 'y'.

    Returns
    -------
    probeCmd : numpy ndarray
         Nact x Nact array of delta actuator heights [meters].
    """
    check.real_positive_scalar(InormDes, 'InormDes', ValueError)
    check.real_scalar(psi, 'psi', TypeError)
    if badAxis.lower() not in ('x', 'y'):
        raise ValueError('Invalid value for badAxis.')

    probe = mp.est.probe
    dmX = mp['dm%d' % probe.whichDM]
    Nact = dmX.Nact

    # Coordinates in actuator space
    xs = np.arange(-(Nact-1)/2, (Nact+1)/2)/Nact - \
        np.round(probe.xOffset)/Nact
    ys = np.arange(-(Nact-1)/2, (Nact+1)/2)/Nact - \
        np.round(probe.yOffset)/Nact
    XS, YS = np.meshgrid(xs, ys)
    if probe.rotation != 0:
        ang = np.radians(probe.rotation)
        XS, YS = (XS*np.cos(ang) - YS*np.sin(ang),
                  XS*np.sin(ang) + YS*np.cos(ang))

    # The probed region cannot extend past the DM's control radius.
    radius = min(probe.radius, Nact/2.0)

    # Surface height to get desired intensity [meters]
    magn = 4*np.pi*mp.lambda0*np.sqrt(InormDes)
    if psi == 0:
        m = 2*radius
        probeSurf = magn*np.sinc(m*XS)*np.sinc(m*YS)
    elif badAxis.lower() == 'y':
        omegaX = radius/2
        probeSurf = magn*np.sinc(radius*XS)*np.sinc(2*radius*YS) * \
            np.cos(2*np.pi*omegaX*XS + psi)
    else:
        omegaY = radius/2
        probeSurf = magn*np.sinc(2*radius*XS)*np.sinc(radius*YS) * \
            np.cos(2*np.pi*omegaY*YS + psi)

    probeCmd = dm.fit_surf_to_act(dmX, probeSurf)

    # Scale the probe amplitude empirically if needed
    return probe.gainFudge*probeCmd
