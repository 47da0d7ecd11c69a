"""WFSC Loop Function."""
import logging
import os
import pickle
import time

import numpy as np

from corowfsc import ctrl, dm, est, imaging, model
from corowfsc.check import ModelInputError, NumericalSingularity
from corowfsc.config import LoopState, ModelParameters, Object
from corowfsc.util import create_axis, radial_grid

log = logging.getLogger(__name__)


def loop(mp, out, state=None):
    """
    Loop over the estimator and controller for WFSC.

    `mp` is frozen for the duration of the loop. Everything that changes
    between iterations is kept in the returned `LoopState`.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Structure of model parameters, after `flesh_out_workspace`
    out : corowfsc.config.Object
        Output variables from `flesh_out_workspace`. Filled in place.
    state : corowfsc.config.LoopState, optional
        Starting DM commands. Built from the configured voltages if omitted.

    Returns
    -------
    state : corowfsc.config.LoopState
        DM commands and normalizations after the last iteration.
    """
    if not isinstance(mp, ModelParameters):
        raise TypeError('Input "mp" must be of type ModelParameters')
    if state is None:
        state = LoopState.from_parameters(mp)

    cvar = Object()
    jacStruct = None

    mp.freeze()
    try:
        for Itr in range(mp.Nitr):
            try:
                jacStruct = _iteration(mp, out, state, cvar, jacStruct, Itr)
            except (NumericalSingularity, ModelInputError) as err:
                log.error('WFSC iteration %d failed: %s', Itr, err)
                raise

        # Update 'out' one last time
        Itr = mp.Nitr
        store_dm_command_history(mp, out, state, Itr)
        imaging.calc_psf_norm_factor(mp, state)
        thput, _ = imaging.calc_thput(mp, state)
        out.thput[Itr] = thput

        Im = imaging.get_summed_image(mp, state)
        out.IrawScoreHist[Itr] = np.mean(Im[mp.Fend.score.maskBool])
        out.IrawCorrHist[Itr] = np.mean(Im[mp.Fend.corr.maskBool])
        out.InormHist[Itr] = out.IrawCorrHist[Itr]
        out.Im = Im
        log.info('Final measured normalized intensity: %.2e',
                 out.InormHist[Itr])

        if mp.flagSaveEachItr or mp.flagSaveWS:
            save_snippet(mp, out)
        if mp.flagSaveWS:
            save_workspace(mp, out, state)
        else:
            log.info('Entire workspace NOT saved because mp.flagSaveWS==False')
    finally:
        mp.thaw()

    log.info('*** END OF WFSC LOOP ***')
    return state


def _iteration(mp, out, state, cvar, jacStruct, Itr):
    """Run one estimation + control iteration. Returns the Jacobian."""
    # Bookkeeping
    log.info('Iteration: %d / %d', Itr, mp.Nitr-1)
    cvar.Itr = Itr
    state.Itr = Itr
    out.Itr = Itr
    out.serialDate[Itr] = time.time()

    # Change the selected DMs if using the scheduled EFC controller
    if mp.controller == 'plannedefc':
        state.dm_ind = np.array(mp.dm_ind_sched[Itr], dtype=int)
    log.info('DMs to be used in this iteration = %s', state.dm_ind)

    store_dm_command_history(mp, out, state, Itr)

    # Normalization and throughput calculations
    imaging.calc_psf_norm_factor(mp, state)
    thput, _ = imaging.calc_thput(mp, state)
    out.thput[Itr] = thput

    # Control Jacobian. Culling restarts from all actuators, so it forces
    # a relinearization.
    cvar.flagCullAct = ctrl.flag_cull(mp, Itr)
    out.flagCullActHist[Itr] = cvar.flagCullAct
    cvar.flagRelin = bool(Itr == 0 or np.any(mp.relinItrVec == Itr) or
                          cvar.flagCullAct)
    if cvar.flagCullAct:
        for idm in state.dm_ind:
            state['dm%d_act_ele' % idm] = \
                np.arange(mp['dm%d' % idm].NactTotal)
    if cvar.flagRelin:
        jacStruct = model.jacobian(mp, state)
    ctrl.cull_weak_actuators(mp, state, cvar, jacStruct)

    # Wavefront estimation
    ev = est.wrapper(mp, state, jacStruct)
    if 'Icube' in ev:
        ev.Im = np.sum(ev.Icube[:, :, 0, :]*mp.sbp_weights, axis=2)
    else:
        ev.Im = imaging.get_summed_image(mp, state)
    store_intensities(mp, out, ev, Itr)

    # Wavefront control
    cvar.Eest = ev.Eest
    dDM = ctrl.wrapper(mp, state, cvar, jacStruct)

    out.log10regHist[Itr] = cvar.log10regUsed
    if not mp.ctrl.flagUseModel:
        out.IrawScoreHist[Itr+1] = np.mean(cvar.Im[mp.Fend.score.maskBool])
        out.IrawCorrHist[Itr+1] = np.mean(cvar.Im[mp.Fend.corr.maskBool])
        out.InormHist[Itr+1] = out.IrawCorrHist[Itr+1]

    # Apply the new commands with the constraints enforced
    for idm in state.dm_ind:
        dmX = mp['dm%d' % idm]
        V = state.command(idm) + dDM['dDM%dV' % idm]
        state.set_command(idm, dm.enforce_constraints(dmX, V))
        out['dm%d' % idm].Vviolations[Itr] = dm.audit_voltage_limits(
            dmX, state.command(idm), state['dm%ddV' % idm], name='DM%d' % idm)

    compute_dm_stats(mp, out, state, Itr)

    # Report normalized intensity
    if np.abs(out.InormHist[Itr+1]) > np.finfo(float).eps:
        log.info('Prev and New Measured Normalized Intensity:\t%.2e\t->\t'
                 '%.2e\t (%.2f x smaller)', out.InormHist[Itr],
                 out.InormHist[Itr+1],
                 out.InormHist[Itr]/out.InormHist[Itr+1])
    else:
        log.info('Previous Measured NI:\t%.2e', out.InormHist[Itr])

    if mp.flagSaveEachItr:
        save_snippet(mp, out)

    return jacStruct


def store_dm_command_history(mp, out, state, Itr):
    """
    Store the latest DM commands in the out object.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Structure of model parameters
    out : corowfsc.config.Object
        Output variables
    state : corowfsc.config.LoopState
        Current DM commands
    Itr : int
        The current WFSC loop iteration number.

    Returns
    -------
    None

    """
    for idm in (1, 2):
        V = state.command(idm)
        if V is not None and 'dm%d' % idm in out:
            out['dm%d' % idm].Vall[:, :, Itr] = V


def compute_dm_stats(mp, out, state, Itr):
    """
    Compute statistics on the DM1 and DM2 surface actuations.

    Stores the P-V voltage, and the P-V and RMS surface within the beam
    annulus, of each DM used in this iteration.

    Parameters
    ----------
    mp : corowfsc.config.ModelParameters
        Structure of model parameters
    out : corowfsc.config.Object
        Output variables
    state : corowfsc.config.LoopState
        Current DM commands
    Itr : int
        The current WFSC loop iteration number.

    Returns
    -------
    None

    """
    NdmPad = int(mp.compact.NdmPad)
    dx_dm = mp.P2.compact.dx/mp.P2.D  # [pupil diameters]
    RS = radial_grid(create_axis(NdmPad, dx_dm, centering=mp.centering))
    rmsSurf_ele = np.logical_and(RS >= mp.P1.IDnorm/2., RS <= 0.5)

    for idm in state.dm_ind:
        dmX = mp['dm%d' % idm]
        outX = out['dm%d' % idm]
        V = state.command(idm)

        outX.Vpv[Itr] = np.max(V) - np.min(V)
        log.info(' DM%d P-V in volts: %.3f', idm, outX.Vpv[Itr])
        tied = np.asarray(dmX.tied).reshape((-1, 2))
        if tied.shape[0] > 0:
            log.info(' DM%d has %d pairs of tied actuators.', idm,
                     tied.shape[0])

        DMsurf = dm.gen_surf(dmX.compact, V, NdmPad)
        outX.Spv[Itr] = np.max(DMsurf) - np.min(DMsurf)
        outX.Srms[Itr] = np.sqrt(np.mean(np.abs(DMsurf[rmsSurf_ele])**2))
        log.info('RMS surface of DM%d = %.1f nm', idm, 1e9*outX.Srms[Itr])


def store_intensities(mp, out, ev, Itr):
    """Store newest intensities in the out object."""
    # Apply subband weights and then sum over subbands
    Iest = np.abs(ev.Eest)**2
    Iinco = np.array(ev.IincoEst, dtype=float)
    modeWeights = mp.sbp_weights[mp.jac.sbp_inds]
    IestAllBands = np.sum(Iest*modeWeights, axis=1)
    IincoAllBands = np.sum(Iinco*modeWeights, axis=1)

    # Put intensities back into 2-D arrays to use the scoring region
    corr = mp.Fend.corr.maskBool
    score = mp.Fend.score.maskBool
    Iest2D = np.zeros((mp.Fend.Neta, mp.Fend.Nxi))
    Iest2D[corr] = IestAllBands
    out.IestScoreHist[Itr] = np.mean(Iest2D[score])
    out.IestCorrHist[Itr] = np.mean(Iest2D[corr])
    Iinco2D = np.zeros((mp.Fend.Neta, mp.Fend.Nxi))
    Iinco2D[corr] = IincoAllBands
    out.IincoScoreHist[Itr] = np.mean(Iinco2D[score])
    out.IincoCorrHist[Itr] = np.mean(Iinco2D[corr])

    # Measured
    out.IrawScoreHist[Itr] = np.mean(ev.Im[score])
    out.IrawCorrHist[Itr] = np.mean(ev.Im[corr])
    out.InormHist[Itr] = out.IrawCorrHist[Itr]

    # Estimated, per mode
    scoreInCorr = mp.Fend.scoreInCorr
    for iMode in range(mp.jac.Nmode):
        imageModVec = Iest[:, iMode]
        imageUnmodVec = Iinco[:, iMode]
        out.normIntModCorr[Itr, iMode] = np.mean(imageModVec)
        out.normIntUnmodCorr[Itr, iMode] = np.mean(imageUnmodVec)
        if np.any(scoreInCorr):
            out.normIntModScore[Itr, iMode] = \
                np.mean(imageModVec[scoreInCorr])
            out.normIntUnmodScore[Itr, iMode] = \
                np.mean(imageUnmodVec[scoreInCorr])


def save_snippet(mp, out):
    """Save just the 'out' object to a pickle file."""
    os.makedirs(mp.path.brief, exist_ok=True)
    fnSnippet = os.path.join(mp.path.brief, mp.runLabel + '_snippet.pkl')
    log.info('Saving data snippet to: %s', fnSnippet)
    with open(fnSnippet, 'wb') as f:
        pickle.dump(out, f)


def save_workspace(mp, out, state):
    """
    Save the history and the final loop state to a pickle file.

    The model parameters are left out; they are rebuilt from the
    configuration.
    """
    os.makedirs(mp.path.ws, exist_ok=True)
    fnAll = os.path.join(mp.path.ws, mp.runLabel + '_all.pkl')
    log.info('Saving final state and history to: %s', fnAll)
    with open(fnAll, 'wb') as f:
        pickle.dump(Object(out=out, state=state), f)
