"""Unit test suite for corowfsc.setup.configure_dark_hole_region()"""
from math import isclose

import numpy as np
import pytest

import corowfsc
from corowfsc.config import Object


def _mp():
    mp = corowfsc.config.ModelParameters()
    mp.centering = 'pixel'
    mp.Fend.res = 10
    mp.Fend.eval.res = 20
    return mp


def test_single_region():
    mp = _mp()
    mp.Fend.corr = Object(Rin=2, Rout=10, ang=180)
    mp.Fend.score = Object(Rin=3, Rout=8, ang=180)
    mp.Fend.sides = 'lr'
    mp.Fend.shape = 'circle'

    corowfsc.setup.configure_dark_hole_region(mp)

    area = np.sum(mp.Fend.corr.maskBool.astype(int))
    areaExpected = (np.pi * (10**2 - 2**2) * (2*180/360) * mp.Fend.res**2)
    assert isclose(area, areaExpected, rel_tol=1e-3)

    assert mp.Fend.corr.Npix == area
    assert mp.Fend.score.maskBool.shape == mp.Fend.corr.maskBool.shape
    # The scoring region lies inside the correction region
    assert not np.any(mp.Fend.score.maskBool & ~mp.Fend.corr.maskBool)
    assert mp.Fend.scoreInCorr.size == mp.Fend.corr.Npix
    assert np.sum(mp.Fend.scoreInCorr) == mp.Fend.score.Npix

    assert mp.Fend.xisDL.size == mp.Fend.Nxi
    assert mp.Fend.eval.Nxi == 2*mp.Fend.Nxi


def test_double_region():
    mp = _mp()
    mp.Fend.corr = Object(Rin=[2, 2], Rout=[5, 5], ang=[150, 180])
    mp.Fend.score = Object(Rin=[2, 2], Rout=[5, 5], ang=[150, 180])
    mp.Fend.sides = ['lr', 'lr']
    mp.Fend.shape = ['circle', 'square']
    mp.Fend.xiOffset = [0, 20]

    corowfsc.setup.configure_dark_hole_region(mp)

    area = np.sum(mp.Fend.corr.maskBool.astype(int))
    areaExpected = (np.pi*(5**2 - 2**2)*(2*150/360)*(mp.Fend.res**2) +
                    (4*5**2 - np.pi*2**2)*(mp.Fend.res**2))
    assert isclose(area, areaExpected, rel_tol=2e-2)


def test_empty_correction_region():
    mp = _mp()
    mp.Fend.corr = Object(Rin=6, Rout=3, ang=180)
    mp.Fend.score = Object(Rin=6, Rout=3, ang=180)
    mp.Fend.sides = 'right'

    with pytest.raises(corowfsc.ConfigurationError):
        corowfsc.setup.configure_dark_hole_region(mp)


if __name__ == '__main__':
    test_single_region()
    test_double_region()
