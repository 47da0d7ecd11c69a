"""Control functions for WFSC."""
from concurrent.futures import ThreadPoolExecutor as PoolExecutor
import logging

import numpy as np

from corowfsc import imaging
from corowfsc.check import (ConfigurationError, ModelInputError,
                            NumericalSingularity)
from corowfsc.config import Object

log = logging.getLogger(__name__)


def wrapper(mp, state, cvar, jacStruct):
    """
    Outermost wrapper function for all the controller functions.

    Forms the spatially and modally weighted normal matrices from the
    Jacobian and the E-field estimate, then runs the selected EFC variant.
    Nothing is applied to the DMs here; the loop adds the returned deltas to
    the commands.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands. `state.dm_ind` gives the DMs being controlled.
    cvar : Object
        Structure containing controller variables. Needs `Itr` and `Eest`.
        Receives the normal matrices and the grid search results.
    jacStruct : Object
        Structure containing control Jacobians for each specified DM.

    Returns
    -------
    dDM : Object
        Delta voltage command `dDM1V`/`dDM2V` of each controlled DM, and
        `Itotal`, the image expected (or obtained) with it.
    """
    init(mp, state, cvar)

    log.debug('Using the Jacobian to make other matrices...')
    cvar.GstarG_wsum = np.zeros((cvar.NeleAll, cvar.NeleAll))
    cvar.RealGstarEab_wsum = np.zeros((cvar.NeleAll, 1))

    for iMode in range(mp.jac.Nmode):
        Gstack = np.hstack([jacStruct['G%d' % idm][:, :, iMode]
                            for idm in state.dm_ind] +
                           [np.zeros((mp.Fend.corr.Npix, 0))])

        # Apply 2-D spatial weighting to the Jacobian and E-field
        iStar = mp.jac.star_inds[iMode]
        Wspatial = mp.WspatialVec[:, iStar]
        Gweighted = Wspatial.reshape((-1, 1))*Gstack
        Eweighted = Wspatial*cvar.Eest[:, iMode]

        cvar.GstarG_wsum += mp.jac.weights[iMode] * \
            np.real(np.conj(Gweighted).T @ Gweighted)
        cvar.RealGstarEab_wsum += mp.jac.weights[iMode]*np.real(
            np.conj(Gweighted).T @ Eweighted.reshape((-1, 1)))

    # Make the regularization matrix. (Define only diagonal here to save RAM.)
    if cvar.NeleAll > 0:
        cvar.EyeNorm = np.max(np.diag(cvar.GstarG_wsum))
    else:
        cvar.EyeNorm = 0.
    cvar.EyeGstarGdiag = cvar.EyeNorm*np.ones(cvar.NeleAll)

    controller = mp.controller.lower()
    log.info('Control beginning ...')
    if controller == 'plannedefc':
        dDM = _planned_efc(mp, state, cvar)
    elif controller == 'gridsearchefc':
        dDM = _grid_search_efc(mp, state, cvar)
    else:
        raise ConfigurationError('Unknown controller "%s".' % mp.controller)

    return dDM


def flag_cull(mp, Itr):
    """
    Decide whether to cull weak actuators at iteration `Itr`.

    Culling happens in the first iteration and whenever the set of
    controlled DMs changes from the previous iteration.
    """
    if Itr == 0:
        return True
    if 'dm_ind_sched' in mp:
        schedPre = np.sort(mp.dm_ind_sched[Itr-1])
        schedNow = np.sort(mp.dm_ind_sched[Itr])
        return not np.array_equal(schedPre, schedNow)
    return False


def cull_weak_actuators(mp, state, cvar, jacStruct):
    """
    Remove weak actuators from the controlled set.

    Only done when both `cvar.flagCullAct` and `cvar.flagRelin` are set,
    i.e. right after a Jacobian was computed for all actuators. An actuator
    is kept when its normalized, mode-averaged Jacobian intensity summed
    over the correction region is at least 10**mp.logGmin. Tied actuators
    are always kept.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        `dmX_act_ele` are updated in place.
    cvar : Object
        Structure containing controller variables
    jacStruct : Object
        Jacobians. Cropped in place to the kept actuators.

    Returns
    -------
    None
    """
    if not (cvar.flagCullAct and cvar.flagRelin):
        return

    log.info('Weeding out weak actuators from the control Jacobian...')
    for idm in state.dm_ind:
        dmX = mp['dm%d' % idm]
        key = 'G%d' % idm
        G = jacStruct[key]

        GintNorm = np.sum(np.mean(np.abs(G)**2, axis=2), axis=0)
        if GintNorm.size == 0 or np.max(GintNorm) == 0:
            keep = np.zeros(GintNorm.shape, dtype=bool)
        else:
            keep = GintNorm/np.max(GintNorm) >= 10**mp.logGmin

        # Add back in all actuators that are tied (to make the tied actuator
        # logic easier)
        act_ele = state.act_ele(idm)
        tied = np.asarray(dmX.get('tied', np.zeros((0, 2))),
                          dtype=int).reshape((-1, 2))
        keep = keep | np.isin(act_ele, tied.ravel())

        # act_ele stays sorted because the Jacobian columns are.
        state['dm%d_act_ele' % idm] = act_ele[keep]
        jacStruct[key] = G[:, keep, :]

        Nele = int(np.sum(keep))
        log.info('  DM%d: %d/%d (%.2f%%) actuators kept for Jacobian', idm,
                 Nele, dmX.NactTotal, 100*Nele/dmX.NactTotal)


def init(mp, state, cvar):
    """
    Vectorize DM commands and otherwise prepare variables for the controller.

    Sets `cvar.uVec`, the concatenated commands of the controlled actuators,
    `cvar.uLegend`, the DM number of each element of `uVec`, and
    `cvar.NeleAll`.
    """
    uList = [np.zeros(0)]
    legendList = [np.zeros(0, dtype=int)]
    for idm in state.dm_ind:
        act_ele = state.act_ele(idm)
        uList.append(state.command(idm).ravel()[act_ele])
        legendList.append(idm*np.ones(act_ele.size, dtype=int))

    cvar.uVec = np.concatenate(uList)
    cvar.uLegend = np.concatenate(legendList)
    cvar.NeleAll = cvar.uVec.size


def wrapup(mp, state, cvar, duVec):
    """
    Parse the controller's command vector into 2-D delta commands per DM.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        Current DM commands and controlled actuators
    cvar : Object
        Structure containing controller variables
    duVec : numpy ndarray
        Vector of delta control commands computed by the controller.

    Returns
    -------
    dDM : Object
        Structure containing the delta DM commands for each DM
    """
    dDM = Object()
    for idm in state.dm_ind:
        dmX = mp['dm%d' % idm]
        dDMVvec = np.zeros(dmX.NactTotal)
        dDMVvec[state.act_ele(idm)] = dmX.get('weight', 1.) * \
            duVec[cvar.uLegend == idm]
        dDM['dDM%dV' % idm] = dDMVvec.reshape((dmX.Nact, dmX.Nact))
    return dDM


def _efc(ni, vals_list, mp, state, cvar):
    """
    Compute the main EFC equation. Called by a wrapper controller function.

    Parameters
    ----------
    ni : int
        index for the set of possible combinations of variables to do a grid
        search over
    vals_list : list
        the set of possible (log10reg, dmfac) combinations
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands before the update
    cvar : Object
        Structure containing controller variables

    Returns
    -------
    InormAvg : float
        Normalized intensity averaged spectrally and spatially.
    dDM : Object
        Structure containing the delta DM commands for each DM

    Raises
    ------
    NumericalSingularity
        If the regularized matrix is singular or the solution is not finite.
    """
    log10reg = vals_list[ni][0]  # log 10 of regularization value
    dmfac = vals_list[ni][1]  # Scaling factor for entire DM command

    if mp.ctrl.get('regMode', 'relative').lower() == 'absolute':
        regDiag = 10.0**(2*log10reg)*np.ones(cvar.NeleAll)
    else:
        regDiag = 10.0**log10reg*cvar.EyeGstarGdiag

    # Least-squares solution with regularization
    try:
        duVecNby1 = -dmfac*np.linalg.solve(
            np.diag(regDiag) + cvar.GstarG_wsum, cvar.RealGstarEab_wsum)
    except np.linalg.LinAlgError as err:
        raise NumericalSingularity(log10reg, str(err)) from err
    duVec = duVecNby1.reshape((-1,))
    if not np.all(np.isfinite(duVec)):
        raise NumericalSingularity(log10reg, 'non-finite DM command')

    dDM = wrapup(mp, state, cvar, duVec)

    # Take images and compute average intensity in dark hole
    if mp.ctrl.flagUseModel:
        Itotal = imaging.get_expected_summed_image(mp, state, cvar, dDM)
    else:
        newState = state
        for idm in state.dm_ind:
            newState = newState.with_command(
                idm, state.command(idm) + dDM['dDM%dV' % idm])
        Itotal = imaging.get_summed_image(mp, newState)
    InormAvg = np.mean(Itotal[mp.Fend.corr.maskBool])
    dDM.Itotal = Itotal

    return InormAvg, dDM


def _efc_candidate(ni, vals_list, mp, state, cvar):
    """Run one grid search candidate. A failed candidate gives (nan, None)."""
    try:
        return _efc(ni, vals_list, mp, state, cvar)
    except (NumericalSingularity, ModelInputError) as err:
        log.warning('Excluding log10reg = %.2f, dmfac = %.2f: %s',
                    vals_list[ni][0], vals_list[ni][1], err)
        return np.nan, None


def _run_grid_search(mp, state, cvar):
    """
    Evaluate every (log10reg, dmfac) pair and return the best one.

    Returns
    -------
    indBest : int
        Index of the best pair in `vals_list`
    vals_list : list
        The (log10reg, dmfac) pairs
    dDMbest : Object
        Delta commands of the best pair
    """
    # Make all combinations of the values
    vals_list = [(x, y) for y in mp.ctrl.dmfacVec for x in mp.ctrl.log10regVec]
    Nvals = len(vals_list)

    # Candidates only call the compact model when flagUseModel is set. The
    # full-model images have their own internal parallelization.
    if mp.flagParallel and mp.ctrl.flagUseModel:
        with PoolExecutor(max_workers=mp.Nthreads) as executor:
            result = executor.map(
                lambda p: _efc_candidate(*p),
                [(ni, vals_list, mp, state, cvar) for ni in range(Nvals)]
            )
        results = tuple(result)
    else:
        results = [_efc_candidate(ni, vals_list, mp, state, cvar)
                   for ni in range(Nvals)]

    InormVec = np.array([InormAvg for InormAvg, _ in results], dtype=float)
    InormVec[~np.isfinite(InormVec)] = np.nan

    log.info('Scaling factor:\t' + '\t'.join('%.2f' % val[1]
                                             for val in vals_list))
    log.info('log10reg:      \t' + '\t'.join('%.1f' % val[0]
                                             for val in vals_list))
    log.info('Inorm:         \t' + '\t'.join('%.2e' % Inorm
                                             for Inorm in InormVec))

    if np.all(np.isnan(InormVec)):
        raise NumericalSingularity(
            [val[0] for val in vals_list],
            'every grid search candidate failed')

    indBest = int(np.nanargmin(InormVec))
    cvar.InormVec = InormVec
    cvar.cMin = InormVec[indBest]
    return indBest, vals_list, results[indBest][1]


def _grid_search_efc(mp, state, cvar):
    """
    Perform a grid search over specified variables for the controller.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands before the update
    cvar : Object
        Structure containing controller variables

    Returns
    -------
    dDM : Object
        Structure containing the delta DM commands for each DM
    """
    indBest, vals_list, dDM = _run_grid_search(mp, state, cvar)

    cvar.Im = dDM.Itotal
    cvar.log10regUsed = vals_list[indBest][0]
    cvar.latestBestlog10reg = vals_list[indBest][0]
    cvar.latestBestDMfac = vals_list[indBest][1]
    log.info('%s grid search %s log10reg = %.1f,\t dmfac = %.2f,\t %4.2e '
             'normalized intensity.',
             'Model-based' if mp.ctrl.flagUseModel else 'Empirical',
             'expects' if mp.ctrl.flagUseModel else 'finds',
             cvar.log10regUsed, cvar.latestBestDMfac, cvar.cMin)

    return dDM


def _planned_efc(mp, state, cvar):
    """
    Perform a scheduled/planned set of EFC iterations.

    A nonzero imaginary part of the scheduled log10(regularization) means
    "use the best value from the latest grid search plus the real part".
    When a grid search was just done and the real part is zero, its best
    command is reused directly.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands before the update
    cvar : Object
        Structure containing controller variables

    Returns
    -------
    dDM : Object
        Structure containing the delta DM commands for each DM
    """
    log10regSched = mp.ctrl.log10regSchedIn[cvar.Itr]
    runNewGridSearch = np.any(np.asarray(mp.gridSearchItrVec) == cvar.Itr)
    useBestLog10Reg = np.imag(log10regSched) != 0
    realLog10RegIsZero = np.real(log10regSched) == 0

    # Step 1: Empirically find the "optimal" regularization value
    if runNewGridSearch:
        indBest, vals_list, dDMbest = _run_grid_search(mp, state, cvar)
        cvar.Im = dDMbest.Itotal
        cvar.latestBestlog10reg = vals_list[indBest][0]
        cvar.latestBestDMfac = vals_list[indBest][1]
        log.info('%s grid search %s log10reg = %.1f,\t dmfac = %.2f,\t '
                 '%4.2e normalized intensity.',
                 'Model-based' if mp.ctrl.flagUseModel else 'Empirical',
                 'expects' if mp.ctrl.flagUseModel else 'finds',
                 cvar.latestBestlog10reg, cvar.latestBestDMfac, cvar.cMin)

    if runNewGridSearch and useBestLog10Reg and realLog10RegIsZero:
        # The grid search already computed this command.
        dDM = dDMbest
        log10regSchedOut = cvar.latestBestlog10reg
    else:
        # Step 2: Replace the imaginary part of the regularization with the
        # latest "optimal" regularization
        if useBestLog10Reg:
            if 'latestBestlog10reg' not in cvar:
                raise ConfigurationError(
                    'Iteration %d uses the best regularization, but no grid '
                    'search has been run yet.' % cvar.Itr)
            log10regSchedOut = cvar.latestBestlog10reg + \
                np.real(log10regSched)
        else:
            log10regSchedOut = np.real(log10regSched)

        # Step 3: Compute the EFC command to use. A failure here is fatal.
        vals_list = [(log10regSchedOut, cvar.get('latestBestDMfac', 1))]
        cvar.cMin, dDM = _efc(0, vals_list, mp, state, cvar)
        cvar.Im = dDM.Itotal
        if mp.ctrl.flagUseModel:
            log.info('Model expects scheduled log10(reg) = %.1f\t to give '
                     '%4.2e normalized intensity.',
                     log10regSchedOut, cvar.cMin)
        else:
            log.info('Scheduled log10reg = %.1f\t gives %4.2e normalized '
                     'intensity.', log10regSchedOut, cvar.cMin)

    cvar.log10regUsed = log10regSchedOut

    return dDM


def efc_schedule_generator(scheduleMatrix):
    """
    Generate the EFC schedule from an input matrix.

    Parameters
    ----------
    scheduleMatrix : array_like
        N x 5 matrix, one row per block of iterations. Columns are:

        0. number of iterations in the block
        1. log10(regularization). A nonzero imaginary part is replaced by
           the best value from the latest grid search plus the real part.
        2. which DMs to control, as digits (e.g. 1, 2 or 12)
        3. flag (0 or 1), whether to relinearize at the block's first
           iteration
        4. flag (0 or 1), whether to do an EFC grid search at the block's
           first iteration

        A row starting with [0, 0, 0, 1, ...] only relinearizes at the next
        iteration.

    Returns
    -------
    Nitr : int
        Number of WFSC iterations.
    relinItrVec : numpy ndarray
        Iteration numbers at which to relinearize the Jacobian.
    gridSearchItrVec : numpy ndarray
        Iteration numbers at which to do a grid search.
    log10regSched : numpy ndarray
        Complex log10(regularization) of each iteration.
    dm_ind_sched : list
        Array of the controlled DM numbers of each iteration.
    """
    scheduleMatrix = np.atleast_2d(np.asarray(scheduleMatrix))
    if scheduleMatrix.shape[1] != 5:
        raise ConfigurationError('The control schedule must have 5 columns.')

    # Number of correction iterations
    Nitr = int(np.sum(np.real(scheduleMatrix[:, 0])))

    relinItrVec = []
    gridSearchItrVec = []
    log10regSched = np.zeros((Nitr,), dtype=complex)
    dmIndList = np.zeros((Nitr,), dtype=int)
    iterCount = 0
    for iRow in range(scheduleMatrix.shape[0]):

        # When to re-linearize
        if int(np.real(scheduleMatrix[iRow, 3])) == 1:
            relinItrVec.append(iterCount)

        # When to re-do the empirical EFC grid search
        if int(np.real(scheduleMatrix[iRow, 4])) == 1:
            gridSearchItrVec.append(iterCount)

        # Make the vector of regularizations at each iteration
        deltaIter = int(np.real(scheduleMatrix[iRow, 0]))
        if deltaIter != 0:
            log10regSched[iterCount:(iterCount+deltaIter)] = \
                scheduleMatrix[iRow, 1]
            dmIndList[iterCount:(iterCount+deltaIter)] = \
                int(np.real(scheduleMatrix[iRow, 2]))

        iterCount += deltaIter

    # DM number index vectors can vary in length. A zero means no DM.
    dm_ind_sched = [np.array([int(digit) for digit in str(dmIndList[Itr])
                              if digit != '0'], dtype=int)
                    for Itr in range(Nitr)]

    return (Nitr, np.array(relinItrVec, dtype=int),
            np.array(gridSearchItrVec, dtype=int), log10regSched,
            dm_ind_sched)
