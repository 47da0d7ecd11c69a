"""Functions to set up a WFSC run by filling in all the derived variables."""
import copy
import logging
import os

import numpy as np
import psutil  # For checking number of cores available

from corowfsc import ctrl, dm, mask
from corowfsc.check import ConfigurationError
from corowfsc.config import Object, Probe
from corowfsc.coronagraph import get_variant
from corowfsc.util import ceil_even, pad_crop

log = logging.getLogger(__name__)

ALLOWED_LAYOUTS = frozenset(('fourier', 'proper'))
ALLOWED_ESTIMATORS = frozenset(('perfect', 'pwp-bp'))
ALLOWED_CONTROLLERS = frozenset(('plannedefc', 'gridsearchefc'))


def flesh_out_workspace(mp):
    """
    Prepare for WFSC by generating masks, DM poke cubes and storage arrays.

    Every configuration problem is reported here with a ConfigurationError,
    before any propagation is done.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Object containing all model parameters. Filled in place.

    Returns
    -------
    out : corowfsc.config.Object
        Object containing arrays to be filled in during WFSC.

    """
    set_optional_variables(mp)
    verify_key_values(mp)

    set_spectral_properties(mp)
    set_jacobian_modal_weights(mp)
    set_control_schedule(mp)

    # Pupil masks
    compute_entrance_pupil_coordinates(mp)
    compute_apodizer_shape(mp)
    crop_lyot_stop(mp)

    # Focal plane mask
    gen_fpm(mp)
    compute_fpm_coordinates(mp)

    # Final focal plane
    compute_Fend_resolution(mp)
    configure_dark_hole_region(mp)
    set_spatial_weights(mp)

    # DM1 and DM2
    configure_dms(mp)
    gen_dm_stops(mp)
    set_dm_surface_padding(mp)

    set_initial_Efields(mp)
    verify_estimator_settings(mp)

    out = init_storage_arrays(mp)

    if mp.d_dm1_dm2 != 0:
        log.info('DM 1-to-2 Fresnel number (using radius) = %.3g',
                 (mp.P2.D/2)**2/(mp.d_dm1_dm2*mp.lambda0))

    return out


def set_optional_variables(mp):
    """
    Set values for optional variables that were not configured.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Object containing all model parameters.

    Returns
    -------
    None

    """
    # File paths for data storage
    if 'brief' not in mp.path:
        mp.path.brief = os.path.join(os.getcwd(), 'data', 'brief')
    if 'ws' not in mp.path:
        mp.path.ws = os.path.join(os.getcwd(), 'data', 'ws')
    if 'runLabel' not in mp:
        mp.runLabel = 'corowfsc'

    # Parallel processing
    if 'flagParallel' not in mp:
        mp.flagParallel = False
    if 'Nthreads' not in mp:
        mp.Nthreads = psutil.cpu_count(logical=False)

    # How many stars to use and their positions.
    # mp.star is for the full model, and mp.compact.star is for the compact
    # and Jacobian models.
    for star in (mp.star, mp.compact.star):
        if 'count' not in star:
            star.count = 1
        for key in ('xiOffsetVec', 'etaOffsetVec'):
            star[key] = np.atleast_1d(star.get(key, np.zeros(star.count)))
        star.weights = np.atleast_1d(star.get('weights', np.ones(star.count)))
    if 'weights' not in mp.jac.star:
        mp.jac.star.weights = np.ones(mp.compact.star.count)

    # Saving data
    if 'flagSaveWS' not in mp:
        mp.flagSaveWS = False
    if 'flagSaveEachItr' not in mp:
        mp.flagSaveEachItr = False

    # Estimator and controller
    if 'flagUseJac' not in mp.est:
        mp.est.flagUseJac = False
    if 'flagUseFull' not in mp.est:
        mp.est.flagUseFull = True
    if 'probe' not in mp.est:
        mp.est.probe = Probe()
    if 'flagUseModel' not in mp.ctrl:
        mp.ctrl.flagUseModel = False
    if 'regMode' not in mp.ctrl:
        mp.ctrl.regMode = 'relative'
    if 'dmfacVec' not in mp.ctrl:
        mp.ctrl.dmfacVec = np.array([1.])
    if 'log10regVec' not in mp.ctrl:
        mp.ctrl.log10regVec = np.arange(-6, -2+0.5, 1)
    if 'logGmin' not in mp:
        mp.logGmin = -6  # 10^(mp.logGmin) is the weakest actuator kept
    if 'dVpoke' not in mp.jac:
        mp.jac.dVpoke = 0.1  # [volts]

    # Detector properties for adding noise to images
    if 'flagImageNoise' not in mp:
        mp.flagImageNoise = False
    detector_defaults = dict(gain=1.0,  # [e-/count]
                             darkCurrentRate=0.015,  # [e-/pixel/second]
                             readNoiseStd=1.7,  # [e-/count]
                             wellDepth=3e4,  # [e-]
                             peakFluxVec=1e8*np.ones(mp.Nsbp),  # [counts/pixel/second]
                             tExpVec=1.0*np.ones(mp.Nsbp),  # [seconds]
                             Nexp=1)  # number of exposures to stack
    for key, value in detector_defaults.items():
        if key not in mp.detector:
            mp.detector[key] = value

    # Optical layout. Whether to have the E-field rotate 180 degrees from
    # one pupil to the next. Does not apply to PROPER full models.
    if 'flagRotation' not in mp:
        mp.flagRotation = True
    for key, Nrelay in (('Nrelay1to2', 1), ('Nrelay2to3', 1),
                        ('Nrelay3to4', 1), ('NrelayFend', 0)):
        if key not in mp:
            mp[key] = Nrelay
    if 'flagApod' not in mp:
        mp.flagApod = False
    for key in ('flagDM1stop', 'flagDM2stop'):
        if key not in mp:
            mp[key] = False
    if 'pol_conds' not in mp.full:
        mp.full.pol_conds = np.array([0])

    # Source offset used for the PSF normalization [lambda0/D]
    for key in ('source_x_offset_norm', 'source_y_offset_norm'):
        if key not in mp:
            mp[key] = 0.

    # DM constraints
    for idm in (1, 2):
        dmX = mp['dm%d' % idm]
        defaults = dict(Vmin=-1000., Vmax=1000., pinned=np.array([], dtype=int),
                        Vpinned=np.array([]), tied=np.zeros((0, 2), dtype=int),
                        flagNbrRule=False, weight=1., inf_sign='+', xtilt=0.,
                        ytilt=0., zrot=0.)
        for key, value in defaults.items():
            if key not in dmX:
                dmX[key] = value
        if 'Nact' in dmX:
            for key in ('xc', 'yc'):
                if key not in dmX:
                    dmX[key] = dmX.Nact/2. - 1/2.

    # Performance evaluation
    if 'res' not in mp.Fend.eval:
        mp.Fend.eval.res = 10
    if 'sides' not in mp.Fend:
        mp.Fend.sides = 'both'
    if 'thput_metric' not in mp:
        mp.thput_metric = 'HMI'
    if 'thput_radius' not in mp:
        mp.thput_radius = 0.7  # [lambda0/D]
    for key, value in (('thput_eval_x', 6.), ('thput_eval_y', 0.)):
        if key not in mp:
            mp[key] = value

    if 'IDnorm' not in mp.P1:
        mp.P1.IDnorm = 0.


def verify_key_values(mp):
    """Verify that important text options are valid."""
    mp.centering = str(mp.centering).lower()
    if mp.centering not in ('pixel', 'interpixel'):
        raise ConfigurationError('%s is not an allowed value of mp.centering.'
                                 % mp.centering)

    # Raises for an unknown coronagraph type
    get_variant(mp.coro)
    mp.coro = str(mp.coro).upper()

    checks = (('layout', ALLOWED_LAYOUTS), ('estimator', ALLOWED_ESTIMATORS),
              ('controller', ALLOWED_CONTROLLERS))
    for key, allowed in checks:
        value = str(mp[key]).lower()
        if value not in allowed:
            raise ConfigurationError(
                '%s is not an allowed value of mp.%s. Options: %s'
                % (mp[key], key, ', '.join(sorted(allowed))))
        mp[key] = value

    mp.dm_ind = np.atleast_1d(np.asarray(mp.dm_ind, dtype=int))
    for idm in mp.dm_ind:
        if idm not in (1, 2):
            raise ConfigurationError('Only DMs 1 and 2 are supported, not %d.'
                                     % idm)
        if 'Nact' not in mp['dm%d' % idm]:
            raise ConfigurationError('DM%d is used but mp.dm%d.Nact is not '
                                     'set.' % (idm, idm))

    if mp.ctrl.regMode.lower() not in ('relative', 'absolute'):
        raise ConfigurationError('mp.ctrl.regMode must be "relative" or '
                                 '"absolute".')


def set_spectral_properties(mp):
    """Set bandwidth and wavelength specifications."""
    # Center-ish wavelength indices (ref = reference)
    mp.si_ref = int(np.floor(mp.Nsbp/2))
    mp.wi_ref = int(np.floor(mp.Nwpsbp/2))

    # Wavelengths used for the compact model (and Jacobian model)
    mp.sbp_weights = np.ones(mp.Nsbp)
    if mp.Nwpsbp == 1:
        # Set ctrl wvls evenly between endpoints (inclusive) of total bandpass
        if mp.Nsbp == 1:
            mp.sbp_centers = np.array([mp.lambda0])
        else:
            mp.sbp_centers = mp.lambda0*np.linspace(1-mp.fracBW/2,
                                                    1+mp.fracBW/2, mp.Nsbp)
            mp.sbp_weights[0] = 1/2
            mp.sbp_weights[-1] = 1/2
    else:
        # Wavelength samples span the full extent of each sub-band, so put
        # the sub-band centers at the middle of each sub-band.
        fracBWcent2cent = mp.fracBW*(1 - 1/mp.Nsbp)
        mp.sbp_centers = mp.lambda0*np.linspace(1-fracBWcent2cent/2,
                                                1+fracBWcent2cent/2, mp.Nsbp)
    mp.sbp_weights = mp.sbp_weights/np.sum(mp.sbp_weights)

    log.info('Using %d discrete wavelength(s) in each of %d sub-bandpasses '
             'over a %.1f%% total bandpass', mp.Nwpsbp, mp.Nsbp,
             100*mp.fracBW)
    log.info('Sub-bandpasses are centered at wavelengths [nm]: %s',
             1e9*mp.sbp_centers)

    # Wavelength weights within each sub-band of the full model, with half
    # weights for the end wavelengths
    mp.full.lambda_weights = np.ones(mp.Nwpsbp)
    if mp.Nwpsbp == 1:
        dlam = 0.
    else:
        mp.full.lambda_weights[0] = 1/2
        mp.full.lambda_weights[-1] = 1/2
        fracBWsbp = mp.fracBW/mp.Nsbp
        sbp_facs = np.linspace(1-fracBWsbp/2, 1+fracBWsbp/2, mp.Nwpsbp)
        dlam = (sbp_facs[1] - sbp_facs[0])*mp.lambda0
    mp.full.lambda_weights = \
        mp.full.lambda_weights/np.sum(mp.full.lambda_weights)

    offsets = np.arange(-(mp.Nwpsbp-1)/2, (mp.Nwpsbp+1)/2)*dlam
    mp.full.lambdasMat = mp.sbp_centers.reshape((-1, 1)) + \
        offsets.reshape((1, -1))
    mp.full.lambdas = np.unique(np.round(mp.full.lambdasMat.ravel(), 15))


def set_jacobian_modal_weights(mp):
    """
    Set the relative weights of the Jacobian modes.

    One mode per (sub-band, star) pair, ordered as
    `imode = iStar*mp.Nsbp + si`. The sub-band weights of each star are
    normalized to sum to one and then scaled by `mp.jac.star.weights`.
    End sub-bands get half weight for the perfect estimator.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Structure of model parameters

    Returns
    -------
    None
        Values are added by reference into the mp structure.
    """
    Nstar = mp.compact.star.count
    sbpWeights = np.ones(mp.Nsbp)
    if mp.estimator == 'perfect' and mp.Nsbp > 1:
        sbpWeights[0] = 0.5
        sbpWeights[-1] = 0.5
    sbpWeights = sbpWeights/np.sum(sbpWeights)

    starWeights = np.atleast_1d(mp.jac.star.weights)
    if starWeights.size != Nstar:
        raise ConfigurationError('mp.jac.star.weights must have one value per '
                                 'star in mp.compact.star.')

    mp.jac.weightMat = sbpWeights.reshape((-1, 1))*starWeights.reshape((1, -1))
    # Column-major flattening gives imode = iStar*Nsbp + si
    mp.jac.weights = mp.jac.weightMat.ravel(order='F')
    mp.jac.sbp_inds = np.tile(np.arange(mp.Nsbp), Nstar)
    mp.jac.star_inds = np.repeat(np.arange(Nstar), mp.Nsbp)
    mp.jac.Nmode = mp.Nsbp*Nstar


def set_control_schedule(mp):
    """Expand the control schedule and set the relinearization iterations."""
    if mp.controller == 'plannedefc':
        (mp.Nitr, mp.relinItrVec, mp.gridSearchItrVec,
         mp.ctrl.log10regSchedIn, mp.dm_ind_sched) = \
            ctrl.efc_schedule_generator(mp.ctrl.sched_mat)
        for Itr, dm_ind in enumerate(mp.dm_ind_sched):
            if not np.all(np.isin(dm_ind, mp.dm_ind)):
                raise ConfigurationError(
                    'Iteration %d of the control schedule uses DMs %s, but '
                    'mp.dm_ind is %s.' % (Itr, dm_ind, mp.dm_ind))
    else:
        if 'Nitr' not in mp:
            raise ConfigurationError('mp.Nitr must be set for the %s '
                                     'controller.' % mp.controller)
        if 'relinItrVec' not in mp:
            mp.relinItrVec = np.arange(mp.Nitr)
    mp.relinItrVec = np.atleast_1d(np.asarray(mp.relinItrVec, dtype=int))


def _pupil_coordinates(mp, Narr, dx):
    """Pupil coordinates normalized to the pupil diameter."""
    if mp.centering == 'pixel':
        xsDL = np.linspace(-Narr/2, Narr/2 - 1, Narr)*dx/mp.P2.D
    else:
        xsDL = np.linspace(-(Narr-1)/2, (Narr-1)/2, Narr)*dx/mp.P2.D
    return np.meshgrid(xsDL, xsDL)


def _even_square(array, name):
    """Check that a mask is square and pad it to an even size."""
    array = np.asarray(array)
    if array.ndim != 2 or array.shape[0] != array.shape[1]:
        raise ConfigurationError('%s must be a square 2-D array, not shape %s.'
                                 % (name, array.shape))
    return pad_crop(array, ceil_even(array.shape[0]))


def compute_entrance_pupil_coordinates(mp):
    """
    Compute the resolution and coordinates at the entrance pupil (plane P1).

    Values also are true at P2. A circular pupil is generated from
    `mp.P1.IDnorm` when no mask is given.
    """
    models = ('compact', 'full') if mp.layout == 'fourier' else ('compact',)
    for model in models:
        P1 = mp.P1[model]
        mp.P2[model].dx = mp.P2.D/P1.Nbeam
        mp.P3[model].dx = mp.P2[model].dx
        if 'mask' not in P1:
            P1.mask = mask.gen_pupil_simple({
                'Nbeam': P1.Nbeam, 'Npad': ceil_even(P1.Nbeam + 2),
                'OD': 1., 'ID': mp.P1.IDnorm, 'centering': mp.centering})
        P1.mask = _even_square(P1.mask, 'mp.P1.%s.mask' % model)
        P1.Narr = P1.mask.shape[0]

    if mp.layout == 'proper':
        # Only the input field size is needed for the PROPER full model.
        mp.P2.full.dx = mp.P2.D/mp.P1.full.Nbeam
        if mp.centering == 'pixel':
            mp.P1.full.Narr = ceil_even(mp.P1.full.Nbeam + 1)
        else:
            mp.P1.full.Narr = ceil_even(mp.P1.full.Nbeam)

    for model in ('compact', 'full'):
        mp.P2[model].XsDL, mp.P2[model].YsDL = _pupil_coordinates(
            mp, mp.P1[model].Narr, mp.P2[model].dx)


def compute_apodizer_shape(mp):
    """Make the apodizer arrays square and store their sizes."""
    if not mp.flagApod:
        return
    models = ('compact', 'full') if mp.layout == 'fourier' else ('compact',)
    for model in models:
        if 'mask' not in mp.P3[model]:
            raise ConfigurationError('mp.flagApod is set but mp.P3.%s.mask is '
                                     'missing.' % model)
        mp.P3[model].mask = _even_square(mp.P3[model].mask,
                                         'mp.P3.%s.mask' % model)
        mp.P3[model].Narr = mp.P3[model].mask.shape[0]


def crop_lyot_stop(mp):
    """
    Crop extra zero padding around the Lyot stop to speed up MFT propagation.

    An annular Lyot stop is generated from `mp.P4.ODnorm` and `mp.P4.IDnorm`
    when no mask is given.
    """
    models = ('compact', 'full') if mp.layout == 'fourier' else ('compact',)
    for model in models:
        P4 = mp.P4[model]
        if 'mask' not in P4:
            P4.mask = mask.gen_pupil_simple({
                'Nbeam': P4.Nbeam, 'Npad': ceil_even(P4.Nbeam + 2),
                'OD': mp.P4.ODnorm, 'ID': mp.P4.get('IDnorm', 0.),
                'centering': mp.centering})
        P4.mask = _even_square(P4.mask, 'mp.P4.%s.mask' % model)

        lyotSum = np.sum(P4.mask)
        Narr = P4.mask.shape[0]
        # Shrink by 2 while nothing but zero padding is removed
        while Narr > 2 and \
                np.abs(lyotSum - np.sum(pad_crop(P4.mask, Narr - 2))) <= 1e-7:
            Narr -= 2
        P4.Narr = Narr
        P4.croppedMask = pad_crop(P4.mask, Narr)
        P4.dx = mp.P4.D/P4.Nbeam  # [meters per pixel]


def gen_fpm(mp):
    """
    Generate the occulting FPMs that were not given.

    Lyot and shaped-pupil types get an annular amplitude FPM from
    `mp.F3.Rin`, `mp.F3.Rout` and `mp.FPMampFac`. Complex FPMs (HLC, EHLC,
    Roddier) must be supplied. Vortex and no-FPM types need no array.
    """
    models = ('compact', 'full') if mp.layout == 'fourier' else ('compact',)
    if mp.coro in ('VC', 'VORTEX', 'AVC'):
        if 'VortexCharge' not in mp.F3:
            raise ConfigurationError('mp.F3.VortexCharge must be set for the '
                                     'vortex coronagraph.')
        return
    if mp.coro in ('NONE', 'NOFPM'):
        return

    for model in models:
        F3 = mp.F3[model]
        if 'mask' in F3:
            continue
        if mp.coro in ('HLC', 'EHLC', 'RODDIER'):
            raise ConfigurationError('mp.F3.%s.mask must be given for the %s '
                                     'coronagraph.' % (model, mp.coro))
        F3.mask = mask.gen_annular_fpm({
            'pixresFPM': F3.res, 'rhoInner': mp.F3.Rin,
            'rhoOuter': mp.F3.get('Rout', np.inf),
            'FPMampFac': mp.get('FPMampFac', 0.), 'centering': mp.centering})


def compute_fpm_coordinates(mp):
    """Generate coordinates in the FPM's plane."""
    if 'mask' not in mp.F3.compact:
        return  # Not needed

    fLamD = mp.fl*mp.lambda0/mp.P2.D
    models = ('compact', 'full') if mp.layout == 'fourier' else ('compact',)
    for model in models:
        F3 = mp.F3[model]
        F3.mask = np.asarray(F3.mask)
        F3.Neta, F3.Nxi = F3.mask.shape
        F3.dxi = fLamD/F3.res  # [meters/pixel]
        F3.deta = F3.dxi
        if mp.centering == 'interpixel' or F3.Nxi % 2 == 1:
            F3.xisDL = np.linspace(-(F3.Nxi-1)/2, (F3.Nxi-1)/2, F3.Nxi)/F3.res
        else:
            F3.xisDL = np.arange(-F3.Nxi/2, F3.Nxi/2)/F3.res
        if mp.centering == 'interpixel' or F3.Neta % 2 == 1:
            F3.etasDL = np.linspace(-(F3.Neta-1)/2, (F3.Neta-1)/2,
                                    F3.Neta)/F3.res
        else:
            F3.etasDL = np.arange(-F3.Neta/2, F3.Neta/2)/F3.res


def compute_Fend_resolution(mp):
    """Define the resolution at the final plane."""
    fLamD = mp.fl*mp.lambda0/mp.P4.D

    # sampling at Fend [meters]
    mp.Fend.dxi = fLamD/mp.Fend.res
    mp.Fend.deta = mp.Fend.dxi

    # Compact evaluation model at higher resolution
    mp.Fend.eval.dxi = fLamD/mp.Fend.eval.res
    mp.Fend.eval.deta = mp.Fend.eval.dxi


def _sw_mask_inputs(mp, region, iZone, sides, shapes):
    inputs = {'pixresFP': mp.Fend.res, 'centering': mp.centering,
              'rhoInner': region.Rin[iZone], 'rhoOuter': region.Rout[iZone],
              'angDeg': region.ang[iZone], 'whichSide': sides[iZone],
              'shape': shapes[iZone]}
    for key in ('clockAngDeg', 'xiOffset', 'etaOffset'):
        if key in mp.Fend:
            inputs[key] = np.atleast_1d(mp.Fend[key])[iZone]
    return inputs


def configure_dark_hole_region(mp):
    """
    Generate the software masks of the correction and scoring regions.

    Each region is the union of one or more zones given by the entries of
    `Rin`, `Rout` and `ang`, plus `mp.Fend.sides` and `mp.Fend.shape`.
    """
    for region in (mp.Fend.corr, mp.Fend.score):
        region.Rin = np.atleast_1d(region.Rin)
        region.Rout = np.atleast_1d(region.Rout)
        region.ang = np.atleast_1d(region.ang)
    Nzones = mp.Fend.corr.Rin.size
    sides = np.atleast_1d(mp.Fend.sides)
    sides = np.resize(sides, Nzones) if sides.size == 1 else sides
    shapes = np.atleast_1d(mp.Fend.get('shape', 'circle'))
    shapes = np.resize(shapes, Nzones) if shapes.size == 1 else shapes

    # Correction region. Combine multiple zones using the largest array size.
    maskCorr = np.zeros((1, 1), dtype=bool)
    for iZone in range(Nzones):
        CORR = _sw_mask_inputs(mp, mp.Fend.corr, iZone, sides, shapes)
        for key in ('FOV', 'xiFOV', 'etaFOV', 'Nxi', 'Neta'):
            if key in mp.Fend:
                CORR[key] = mp.Fend[key]
        maskTemp, _, _ = mask.gen_sw_mask(CORR)
        Nrow = max(maskTemp.shape[0], maskCorr.shape[0])
        Ncol = max(maskTemp.shape[1], maskCorr.shape[1])
        maskCorr = pad_crop(maskCorr, (Nrow, Ncol)) | \
            pad_crop(maskTemp, (Nrow, Ncol))
    mp.Fend.corr.maskBool = maskCorr

    # Size and coordinates of the output image
    mp.Fend.Neta, mp.Fend.Nxi = maskCorr.shape
    CORR['Nxi'] = mp.Fend.Nxi
    CORR['Neta'] = mp.Fend.Neta
    _, mp.Fend.xisDL, mp.Fend.etasDL = mask.gen_sw_mask(CORR)

    # Evaluation model for computing throughput (only size and coordinates)
    CORR['pixresFP'] = mp.Fend.eval.res
    CORR['Nxi'] = ceil_even(mp.Fend.eval.res/mp.Fend.res*mp.Fend.Nxi)
    CORR['Neta'] = ceil_even(mp.Fend.eval.res/mp.Fend.res*mp.Fend.Neta)
    mp.Fend.eval.Nxi = CORR['Nxi']
    mp.Fend.eval.Neta = CORR['Neta']
    _, mp.Fend.eval.xisDL, mp.Fend.eval.etasDL = mask.gen_sw_mask(CORR)
    mp.Fend.eval.XIS, mp.Fend.eval.ETAS = np.meshgrid(mp.Fend.eval.xisDL,
                                                      mp.Fend.eval.etasDL)

    # Scoring region, on the same pixels as the correction region
    maskScore = np.zeros(maskCorr.shape, dtype=bool)
    for iZone in range(mp.Fend.score.Rin.size):
        SCORE = _sw_mask_inputs(mp, mp.Fend.score, iZone, sides, shapes)
        SCORE['Nxi'] = mp.Fend.Nxi
        SCORE['Neta'] = mp.Fend.Neta
        maskTemp, _, _ = mask.gen_sw_mask(SCORE)
        maskScore = maskScore | maskTemp
    mp.Fend.score.maskBool = maskScore

    # Number of pixels used in the dark hole
    mp.Fend.corr.Npix = int(np.sum(mp.Fend.corr.maskBool))
    mp.Fend.score.Npix = int(np.sum(mp.Fend.score.maskBool))
    if mp.Fend.corr.Npix == 0:
        raise ConfigurationError('The correction region has no pixels.')

    # Which pixels in the vectorized correction region are also scored
    mp.Fend.scoreInCorr = mp.Fend.score.maskBool[mp.Fend.corr.maskBool]


def set_spatial_weights(mp):
    """
    Set up spatially-based weighting of the dark hole intensity.

    Annular zones centered on each star are given by the rows of
    `mp.WspatialDef`: zone inner radius [lambda0/D], zone outer radius
    [lambda0/D], and intensity weight. The result `mp.WspatialVec` has one
    column per star of the compact model.
    """
    XIS, ETAS = np.meshgrid(mp.Fend.xisDL, mp.Fend.etasDL)
    WspatialDef = np.atleast_2d(mp.get('WspatialDef', np.zeros((0, 3))))
    if WspatialDef.size > 0 and WspatialDef.shape[1] != 3:
        raise ConfigurationError('mp.WspatialDef must have 3 columns.')

    Nstar = mp.compact.star.count
    mp.WspatialVec = np.ones((mp.Fend.corr.Npix, Nstar))
    for iStar in range(Nstar):
        RHOS = np.hypot(XIS - mp.compact.star.xiOffsetVec[iStar],
                        ETAS - mp.compact.star.etaOffsetVec[iStar])
        Wspatial = mp.Fend.corr.maskBool.astype(float)
        for rhoIn, rhoOut, weight in WspatialDef:
            Wannulus = 1. + (np.sqrt(weight) - 1.) * \
                ((RHOS >= rhoIn) & (RHOS < rhoOut))
            Wspatial = Wspatial*Wannulus
        mp.WspatialVec[:, iStar] = Wspatial[mp.Fend.corr.maskBool]


def _dm_is_used(mp, idm):
    return bool(np.any(mp.dm_ind == idm))


def configure_dms(mp):
    """
    Flesh out the dm1 and dm2 objects.

    The compact model gets its own copy of each DM record in
    `mp.dmX.compact`, sampled at the compact pupil resolution. Influence
    function datacubes are only computed for the DMs in `mp.dm_ind` (and,
    for the full model, only for the Fourier layout).
    """
    for idm in (1, 2):
        dmX = mp['dm%d' % idm]
        if 'Nact' not in dmX:
            continue
        name = 'dm%d' % idm

        V = dmX.get('V', np.zeros((dmX.Nact, dmX.Nact)))
        if np.shape(V) != (dmX.Nact, dmX.Nact):
            raise ConfigurationError('mp.%s.V must have shape (%d, %d).'
                                     % (name, dmX.Nact, dmX.Nact))
        dmX.V = np.array(V, dtype=float)
        if 'VtoH' not in dmX:
            dmX.VtoH = 1e-9*np.ones((dmX.Nact, dmX.Nact))  # [meters/volt]
        try:
            np.broadcast_to(dmX.VtoH, (dmX.Nact, dmX.Nact))
        except ValueError:
            raise ConfigurationError('mp.%s.VtoH does not match the %dx%d '
                                     'actuator grid.'
                                     % (name, dmX.Nact, dmX.Nact)) from None

        dm.load_influence_function(dmX)
        dmX.centering = mp.centering

        compact = dmX.compact
        for key in dmX.keys():
            if key not in ('compact', 'full'):
                compact[key] = copy.deepcopy(dmX[key])

        used = _dm_is_used(mp, idm)
        dm.gen_poke_cube(compact, mp, mp.P2.compact.dx, NOCUBE=not used)
        dm.gen_poke_cube(dmX, mp, mp.P2.full.dx,
                         NOCUBE=not (used and mp.layout == 'fourier'))


def gen_dm_stops(mp):
    """Generate circular stops for the DMs."""
    for idm in (1, 2):
        if not mp['flagDM%dstop' % idm]:
            continue
        dmX = mp['dm%d' % idm]
        dmX.compact.mask = mask.gen_dm_stop(mp.P2.compact.dx, dmX.Dstop,
                                            mp.centering)
        dmX.full.mask = mask.gen_dm_stop(mp.P2.full.dx, dmX.Dstop,
                                         mp.centering)


def _padded_size(mp, NdmPadList, Nbeam, dx, lambdas):
    """Power-of-2 array size for angular spectrum propagation."""
    if len(NdmPadList) > 0:
        NdmPad = int(2**np.ceil(1 + np.log2(np.max(NdmPadList))))
    else:
        NdmPad = int(2*Nbeam)

    # Double the zero-padding until the angular spectrum sampling
    # requirement is not violated
    while (NdmPad < np.min(lambdas)*np.abs(mp.d_dm1_dm2)/dx**2) or \
            (NdmPad < np.min(lambdas)*np.abs(mp.d_P2_dm1)/dx**2):
        NdmPad = 2*NdmPad
    return NdmPad


def set_dm_surface_padding(mp):
    """Set how much the DM surface arrays get padded prior to propagation."""
    usedDMs = [mp['dm%d' % idm] for idm in (1, 2) if _dm_is_used(mp, idm)]

    NdmPad = _padded_size(mp, [dmX.compact.NdmPad for dmX in usedDMs],
                          mp.P1.compact.Nbeam, mp.P2.compact.dx,
                          mp.sbp_centers)
    mp.compact.NdmPad = max(NdmPad, mp.P1.compact.Narr)

    if mp.layout == 'fourier':
        NdmPad = _padded_size(mp, [dmX.NdmPad for dmX in usedDMs],
                              mp.P1.full.Nbeam, mp.P2.full.dx,
                              mp.full.lambdas)
        mp.full.NdmPad = max(NdmPad, mp.P1.full.Narr)


def set_initial_Efields(mp):
    """Define the star E-fields at the input pupil."""
    NarrFull = mp.P1.full.Narr
    if 'E' not in mp.P1.full:
        mp.P1.full.E = np.ones((NarrFull, NarrFull, mp.Nwpsbp, mp.Nsbp),
                               dtype=complex)
    elif np.shape(mp.P1.full.E) != (NarrFull, NarrFull, mp.Nwpsbp, mp.Nsbp):
        raise ConfigurationError('mp.P1.full.E must have shape (%d, %d, %d, '
                                 '%d).' % (NarrFull, NarrFull, mp.Nwpsbp,
                                           mp.Nsbp))

    Narr = mp.P1.compact.Narr
    if 'E' not in mp.P1.compact:
        mp.P1.compact.E = np.ones((Narr, Narr, mp.Nsbp), dtype=complex)
    else:
        EcubeTemp = np.asarray(mp.P1.compact.E)
        if EcubeTemp.ndim != 3 or EcubeTemp.shape[2] != mp.Nsbp:
            raise ConfigurationError('mp.P1.compact.E must have one slice per '
                                     'sub-band.')
        mp.P1.compact.E = np.stack([pad_crop(EcubeTemp[:, :, si], Narr)
                                    for si in range(mp.Nsbp)], axis=2)

    # Throughput is computed with the compact model
    mp.sumPupil = np.sum(np.abs(
        mp.P1.compact.mask*np.mean(mp.P1.compact.E, axis=2))**2)


def verify_estimator_settings(mp):
    """Check the settings that only matter for the chosen estimator."""
    if mp.estimator == 'pwp-bp':
        whichDM = mp.est.probe.whichDM
        if not _dm_is_used(mp, whichDM):
            raise ConfigurationError('The probing DM (%d) must be in '
                                     'mp.dm_ind.' % whichDM)
        if mp.est.flagUseJac and mp.controller == 'plannedefc':
            for Itr, dm_ind in enumerate(mp.dm_ind_sched):
                if whichDM not in dm_ind:
                    raise ConfigurationError(
                        'Iteration %d of the control schedule drops the '
                        'probing DM (%d), so its Jacobian is missing.'
                        % (Itr, whichDM))
        if mp.compact.star.count != 1 or mp.star.count != 1:
            raise ConfigurationError('Pairwise probing supports one star '
                                     'only.')
    elif mp.est.flagUseFull and mp.star.count != mp.compact.star.count:
        raise ConfigurationError('The perfect estimator with the full model '
                                 'needs the same stars in mp.star and '
                                 'mp.compact.star.')


def init_storage_arrays(mp):
    """
    Initialize arrays that store performance history.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Object of model parameters

    Returns
    -------
    out : corowfsc.config.Object
        Object of performance history arrays.

    """
    Nitr = mp.Nitr
    out = Object(Fend=Object(corr=Object(), score=Object()))

    # EFC regularization history
    out.Nitr = Nitr
    out.log10regHist = np.zeros(Nitr)

    for idm in (1, 2):
        dmX = mp['dm%d' % idm]
        if 'Nact' not in dmX:
            continue
        out['dm%d' % idm] = Object(
            Vpv=np.zeros(Nitr),  # Peak-to-valley DM voltages
            Spv=np.zeros(Nitr),  # Peak-to-valley DM surfaces
            Srms=np.zeros(Nitr),  # RMS DM surfaces
            Vall=np.zeros((dmX.Nact, dmX.Nact, Nitr+1)),
            Vviolations=np.zeros(Nitr, dtype=int),
        )

    # Intensity history at each iteration
    out.InormHist = np.zeros(Nitr+1)
    out.IrawCorrHist = np.zeros(Nitr+1)
    out.IrawScoreHist = np.zeros(Nitr+1)
    out.IestCorrHist = np.zeros(Nitr)
    out.IestScoreHist = np.zeros(Nitr)
    out.IincoCorrHist = np.zeros(Nitr)
    out.IincoScoreHist = np.zeros(Nitr)

    Nmode = mp.jac.Nmode
    out.normIntModCorr = np.zeros((Nitr, Nmode))
    out.normIntModScore = np.zeros((Nitr, Nmode))
    out.normIntUnmodCorr = np.zeros((Nitr, Nmode))
    out.normIntUnmodScore = np.zeros((Nitr, Nmode))

    out.thput = np.zeros(Nitr+1)
    out.flagCullActHist = np.zeros(Nitr, dtype=bool)

    # Variables related to final image
    out.Fend.res = mp.Fend.res
    out.Fend.xisDL = mp.Fend.xisDL
    out.Fend.etasDL = mp.Fend.etasDL
    out.Fend.scoreInCorr = mp.Fend.scoreInCorr
    out.Fend.corr.maskBool = mp.Fend.corr.maskBool
    out.Fend.score.maskBool = mp.Fend.score.maskBool

    out.serialDate = np.zeros(Nitr)  # start time of each iteration as float

    return out
