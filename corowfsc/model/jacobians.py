"""Functions to compute the Jacobian for EFC."""
from concurrent.futures import ThreadPoolExecutor as PoolExecutor
import logging

import numpy as np

from corowfsc.config import Object, ModelVariables
from corowfsc.util import TicToc
from corowfsc.model.models import compact_input_field, compact_general

log = logging.getLogger(__name__)


def compute_column(iact, whichDM, dV, EunpokedVec, mp, state, wvl, normFac,
                   Ein, weight):
    """
    Compute one column of the control Jacobian with the compact model.

    Pokes one actuator by a small amount and differences the resulting field
    in the correction region against the unpoked field. An actuator whose
    influence function is zero everywhere gets an all-zero column without
    any propagation.

    Parameters
    ----------
    iact : int
        Linear index of the actuator on the full Nact x Nact grid.
    whichDM : int
        DM number, 1 or 2.
    dV : float
        Poke size [volts].
    EunpokedVec : numpy ndarray
        Unpoked field at the pixels of the correction region.
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands about which the model is linearized
    wvl : float
        Wavelength [meters]
    normFac : float
        PSF normalization factor
    Ein : numpy ndarray
        Input field at the entrance pupil
    weight : float
        Scale factor applied to the column, usually `mp.dmX.weight`.

    Returns
    -------
    JacCol : numpy ndarray
        1-D complex array of length `mp.Fend.corr.Npix`.
    """
    dmX = mp['dm%d' % whichDM]
    if not np.any(dmX.compact.inf_datacube[:, :, iact]):
        return np.zeros(EunpokedVec.shape, dtype=complex)

    act_sens = dmX.get('act_sens', 1.)
    if np.ndim(act_sens) > 0:
        act_sens = np.asarray(act_sens).ravel()[iact]
    stepFac = dmX.get('stepFac', 1.)

    V = np.array(state.command(whichDM), dtype=float)
    V.flat[iact] += stepFac*dV  # stay in the linear regime
    poked = state.with_command(whichDM, V)

    Epoked = compact_general(mp, poked, wvl, Ein, normFac, False)

    return act_sens*weight/stepFac * \
        (Epoked[mp.Fend.corr.maskBool] - EunpokedVec)/dV


def _mode_inputs(mp, state, imode):
    """Wavelength, normalization and input field of one Jacobian mode."""
    isbp = mp.jac.sbp_inds[imode]
    iStar = mp.jac.star_inds[imode]
    wvl = mp.sbp_centers[isbp]
    normFac = state.I00compact[isbp]

    modvar = ModelVariables(sbpIndex=isbp, starIndex=iStar)
    Ein = compact_input_field(mp, modvar, wvl, normFac)
    return wvl, normFac, Ein


def jacobian(mp, state):
    """
    Compute the control Jacobian used for EFC.

    One Jacobian per DM used by the controller (`state.dm_ind`) and per mode
    (sub-band and star pair listed in `mp.jac`). Columns are independent, so
    they are mapped over a thread pool when `mp.flagParallel` is set and
    placed back by actuator index afterwards.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands about which the model is linearized

    Returns
    -------
    jacStruct : Object
        Contains the Jacobians `G1` and `G2`, each of shape
        (mp.Fend.corr.Npix, Nele, mp.jac.Nmode).
    """
    if state.I00compact is None:
        raise ValueError('PSF normalization must be computed before the '
                         'Jacobian.')

    Npix = mp.Fend.corr.Npix
    dV = mp.jac.get('dVpoke', 0.1)
    jacStruct = Object()
    for idm in (1, 2):
        Nele = state.act_ele(idm).size if np.any(state.dm_ind == idm) else 0
        jacStruct['G%d' % idm] = np.zeros((Npix, Nele, mp.jac.Nmode),
                                          dtype=complex)

    flagParallel = mp.get('flagParallel', False)
    log.info('Computing control Jacobian matrices in %s...',
             'parallel' if flagParallel else 'serial')
    with TicToc('jacobian'):
        for imode in range(mp.jac.Nmode):
            wvl, normFac, Ein = _mode_inputs(mp, state, imode)
            Eunpoked = compact_general(mp, state, wvl, Ein, normFac, False)
            EunpokedVec = Eunpoked[mp.Fend.corr.maskBool]

            for idm in state.dm_ind:
                weight = mp['dm%d' % idm].get('weight', 1.)
                tasks = [(iact, idm, dV, EunpokedVec, mp, state, wvl, normFac,
                          Ein, weight) for iact in state.act_ele(idm)]
                log.debug('mode %d, DM%d: %d actuators', imode, idm,
                          len(tasks))

                if flagParallel:
                    with PoolExecutor(max_workers=mp.Nthreads) as executor:
                        columns = tuple(executor.map(
                            lambda p: compute_column(*p), tasks))
                else:
                    columns = [compute_column(*p) for p in tasks]

                G = jacStruct['G%d' % idm]
                for index, column in enumerate(columns):
                    G[:, index, imode] = column

    apply_ties_to_jac(mp, state, jacStruct)

    return jacStruct


def apply_ties_to_jac(mp, state, jacStruct):
    """
    Merge the columns of tied actuators.

    The 2nd actuator's column is added to the first actuator's column, and
    then the 2nd actuator's column is zeroed out.
    """
    for idm in state.dm_ind:
        tied = np.asarray(mp['dm%d' % idm].get('tied', np.zeros((0, 2))),
                          dtype=int).reshape((-1, 2))
        act_ele = state.act_ele(idm)
        G = jacStruct['G%d' % idm]
        for index1all, index2all in tied:
            index1 = np.nonzero(act_ele == index1all)[0]
            index2 = np.nonzero(act_ele == index2all)[0]
            if index1.size == 0 or index2.size == 0:
                continue
            G[:, index1, :] += G[:, index2, :]
            G[:, index2, :] = 0


def validate_jacobian(mp, state, jacStruct, whichDM, iact_list, imode=0):
    """
    Check selected Jacobian columns against direct compact-model differencing.

    The reference column is an independent central difference of the compact
    model with a poke ten times smaller than `mp.jac.dVpoke`. A mismatch
    therefore shows both a bad column and a poke size outside the linear
    regime. Tied actuators are not merged here, so check them separately.

    Parameters
    ----------
    mp : ModelParameters
        Structure containing optical model parameters
    state : LoopState
        DM commands about which the Jacobian was computed
    jacStruct : Object
        Output of `jacobian`.
    whichDM : int
        DM number, 1 or 2.
    iact_list : array_like
        Linear actuator indices to check. Must be in `state.act_ele(whichDM)`.
    imode : int
        Jacobian mode to check.

    Returns
    -------
    relErr : numpy ndarray
        Relative error ||G_col - G_direct|| / ||G_direct|| per actuator. Zero
        where both columns are zero.
    """
    wvl, normFac, Ein = _mode_inputs(mp, state, imode)
    maskBool = mp.Fend.corr.maskBool
    dmX = mp['dm%d' % whichDM]
    dV = mp.jac.get('dVpoke', 0.1)/10.
    weight = dmX.get('weight', 1.)
    act_sens = np.broadcast_to(np.asarray(dmX.get('act_sens', 1.)),
                               (dmX.Nact, dmX.Nact)).ravel()
    act_ele = state.act_ele(whichDM)
    G = jacStruct['G%d' % whichDM]
    V0 = np.array(state.command(whichDM), dtype=float)

    relErr = np.zeros(len(iact_list))
    for ii, iact in enumerate(iact_list):
        index = np.nonzero(act_ele == iact)[0]
        if index.size == 0:
            raise ValueError('Actuator %d of DM%d is not in the Jacobian.'
                             % (iact, whichDM))

        Epm = []
        for sign in (1, -1):
            V = V0.copy()
            V.flat[iact] += sign*dV
            E = compact_general(mp, state.with_command(whichDM, V), wvl, Ein,
                                normFac, False)
            Epm.append(E[maskBool])
        colDirect = act_sens[iact]*weight*(Epm[0] - Epm[1])/(2*dV)

        colJac = G[:, index[0], imode]
        denom = np.linalg.norm(colDirect)
        if denom > 0:
            relErr[ii] = np.linalg.norm(colJac - colDirect)/denom
        else:
            relErr[ii] = np.linalg.norm(colJac)

    log.info('Max relative Jacobian error for DM%d: %.3e', whichDM,
             np.max(relErr) if relErr.size else 0.)
    return relErr
