"""Regression tests of WFSC with a small Lyot coronagraph."""
from copy import deepcopy
import os
import pickle

import numpy as np
import pytest

import corowfsc

import config_wfsc_lc_small as CONFIG


def test_wfsc_lc():
    mp = deepcopy(CONFIG.mp)
    mp.runLabel = 'testing_wfsc_lc'

    out = corowfsc.flesh_out_workspace(mp)
    state = corowfsc.loop(mp, out)

    print(out.InormHist)
    print(out.log10regHist)
    print(out.thput)

    # The dark hole gets darker
    assert out.InormHist.size == mp.Nitr + 1
    assert out.InormHist[mp.Nitr] < 0.3*out.InormHist[0]
    assert np.all(np.isin(out.log10regHist, mp.ctrl.log10regVec))

    # Off-axis throughput of the Lyot stop stays sensible
    assert np.all(out.thput > 0)
    assert np.all(out.thput < 1)

    # Command history
    for idm in (1, 2):
        Vall = out['dm%d' % idm].Vall
        assert not np.any(Vall[:, :, 0])
        assert np.array_equal(Vall[:, :, -1], state.command(idm))
        assert np.any(state.command(idm))
        assert np.all(out['dm%d' % idm].Spv > 0)

    # The parameters are only frozen during the loop
    assert not mp.frozen
    mp.Nitr = 5


def test_wfsc_lc_planned_efc():
    mp = deepcopy(CONFIG.mp)
    mp.runLabel = 'testing_planned_efc'
    mp.controller = 'plannedEFC'
    # DM1 alone with a grid search, then both DMs at 100x the best value
    mp.ctrl.sched_mat = np.array([[1, 1j, 1, 1, 1],
                                  [2, 2+1j, 12, 1, 0]])

    out = corowfsc.flesh_out_workspace(mp)
    assert mp.Nitr == 3
    assert np.array_equal(mp.relinItrVec, [0, 1])

    state = corowfsc.loop(mp, out)

    # Culling is redone when DM2 joins the control
    assert np.array_equal(out.flagCullActHist, [True, True, False])
    assert out.log10regHist[1] == pytest.approx(out.log10regHist[0] + 2)
    assert out.log10regHist[2] == pytest.approx(out.log10regHist[0] + 2)
    assert out.InormHist[mp.Nitr] < out.InormHist[0]
    assert out.InormHist[mp.Nitr] < out.InormHist[1]
    assert not np.any(out.dm2.Vall[:, :, 1])
    assert np.any(state.command(2))


def test_save_workspace(tmp_path):
    mp = deepcopy(CONFIG.mp)
    mp.runLabel = 'testing_save'
    mp.Nitr = 1
    mp.flagSaveWS = True
    mp.path.ws = str(tmp_path / 'ws')
    mp.path.brief = str(tmp_path / 'brief')

    out = corowfsc.flesh_out_workspace(mp)
    state = corowfsc.loop(mp, out)

    fnAll = os.path.join(mp.path.ws, 'testing_save_all.pkl')
    with open(fnAll, 'rb') as f:
        saved = pickle.load(f)
    assert np.array_equal(saved.state.command(1), state.command(1))
    assert np.array_equal(saved.out.InormHist, out.InormHist)
    assert os.path.isfile(os.path.join(mp.path.brief,
                                       'testing_save_snippet.pkl'))


if __name__ == '__main__':
    test_wfsc_lc()
    test_wfsc_lc_planned_efc()
