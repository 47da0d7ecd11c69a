"""Functional tests of pairwise probing estimation."""
from copy import deepcopy

import numpy as np
import pytest

import corowfsc
from corowfsc.config import LoopState

import config_wfsc_lc_small as CONFIG


def _percent_error(mp, Etrue, Eest):
    """Mean squared error relative to the mean true intensity [%]."""
    Etrue = Etrue.copy()
    Etrue[Eest == 0] = 0
    meanI = np.mean(np.abs(Etrue)**2)
    meanIdiff = np.mean(np.abs(Etrue - Eest)**2)
    return meanIdiff/meanI*100


@pytest.mark.parametrize("flagUseJac, maxPercentError", [(False, 10.),
                                                        (True, 20.)])
def test_pairwise_probing(flagUseJac, maxPercentError):
    mp = deepcopy(CONFIG.mp)
    mp.estimator = 'pwp-bp'
    mp.dm_ind = [1]
    mp.est.flagUseJac = flagUseJac
    mp.est.InormProbe = 1e-5

    corowfsc.flesh_out_workspace(mp)
    state = LoopState.from_parameters(mp)
    corowfsc.imaging.calc_psf_norm_factor(mp, state)
    jacStruct = corowfsc.model.jacobian(mp, state) if flagUseJac else None

    # Exact E-field for comparison
    Etrue = corowfsc.est.perfect(mp, state)[:, 0]

    ev = corowfsc.est.wrapper(mp, state, jacStruct)
    Eest = ev.Eest[:, 0]

    assert ev.Eest.shape == (mp.Fend.corr.Npix, 1)
    assert ev.Icube.shape == (mp.Fend.Neta, mp.Fend.Nxi, 7, 1)
    assert np.sum(Eest != 0) > 0.5*mp.Fend.corr.Npix
    percentEstError = _percent_error(mp, Etrue, Eest)
    print(percentEstError)
    assert percentEstError < maxPercentError

    # Probing does not change the DM commands
    assert not np.any(state.command(1))


def test_probing_dm_must_be_controlled():
    mp = deepcopy(CONFIG.mp)
    mp.estimator = 'pwp-bp'
    mp.dm_ind = [2]
    with pytest.raises(corowfsc.ConfigurationError):
        corowfsc.flesh_out_workspace(mp)


def _planned_pwp_bp(flagUseJac):
    mp = deepcopy(CONFIG.mp)
    mp.estimator = 'pwp-bp'
    mp.dm_ind = [1, 2]
    mp.est.flagUseJac = flagUseJac
    mp.controller = 'plannedefc'
    mp.ctrl.sched_mat = np.array([[1, -3, 12, 1, 0],
                                  [1, -3, 2, 0, 0]])
    return mp


def test_planned_schedule_must_keep_probing_dm():
    mp = _planned_pwp_bp(flagUseJac=True)
    with pytest.raises(corowfsc.ConfigurationError):
        corowfsc.flesh_out_workspace(mp)

    # Without the Jacobian the probe phases come from the model
    mp = _planned_pwp_bp(flagUseJac=False)
    corowfsc.flesh_out_workspace(mp)
    assert mp.Nitr == 2


def test_probe_shape():
    mp = deepcopy(CONFIG.mp)
    corowfsc.flesh_out_workspace(mp)
    InormDes = 1e-5

    probeCmd = corowfsc.est.gen_pairwise_probe(mp, InormDes, 0., 'x')
    assert probeCmd.shape == (12, 12)
    assert np.all(np.isfinite(probeCmd))
    # The sinc-sinc probe peaks near the middle of the DM
    row, col = np.unravel_index(np.argmax(probeCmd), probeCmd.shape)
    assert abs(row - 5.5) <= 1 and abs(col - 5.5) <= 1

    with pytest.raises(ValueError):
        corowfsc.est.gen_pairwise_probe(mp, InormDes, 0., 'z')


if __name__ == '__main__':
    test_pairwise_probing(False, 10.)
