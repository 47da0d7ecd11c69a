"""Unit test suite for corowfsc.mask.gen_pupil_simple()."""
from math import isclose

import numpy as np
import pytest

import corowfsc


def test_area_circle():
    inputs = {"Nbeam": 100, "Npad": 180, "OD": 1.0}
    pupil = corowfsc.mask.gen_pupil_simple(inputs)
    areaExpected = np.pi/4*(inputs["OD"]*inputs["Nbeam"])**2
    area = np.sum(pupil)
    assert pupil.shape == (180, 180)
    assert isclose(area, areaExpected, rel_tol=1e-5)


def test_area_annulus():
    inputs = {"Nbeam": 100, "Npad": 180, "OD": 1.0, "ID": 0.20}
    pupil = corowfsc.mask.gen_pupil_simple(inputs)
    areaExpected = np.pi/4*(inputs["OD"]**2 -
                            inputs["ID"]**2)*inputs["Nbeam"]**2
    area = np.sum(pupil)
    assert isclose(area, areaExpected, rel_tol=1e-5)


def test_undersized_lyot_stop():
    inputs = {"Nbeam": 100, "Npad": 180, "OD": 0.8, "ID": 0.2}
    lyot = corowfsc.mask.gen_pupil_simple(inputs)
    inputs["OD"] = 1.0
    pupil = corowfsc.mask.gen_pupil_simple(inputs)
    assert np.all(lyot <= pupil + 1e-12)


@pytest.mark.parametrize("centering", ["pixel", "interpixel"])
def test_symmetry(centering):
    inputs = {"Nbeam": 50, "Npad": 60, "OD": 1.0, "centering": centering}
    pupil = corowfsc.mask.gen_pupil_simple(inputs)
    if centering == "pixel":
        # Symmetric about the pixel at Npad/2
        pupil = pupil[1:, 1:]
    assert np.allclose(pupil, np.fliplr(pupil), atol=1e-8)
    assert np.allclose(pupil, np.flipud(pupil), atol=1e-8)


def test_obscuration_larger_than_aperture():
    with pytest.raises(ValueError):
        corowfsc.mask.gen_pupil_simple({"Nbeam": 10, "Npad": 12, "OD": 0.5,
                                        "ID": 0.6})


def test_dm_stop():
    stop = corowfsc.mask.gen_dm_stop(1e-4, 4e-3, 'pixel')
    assert stop.shape[0] % 2 == 0
    assert isclose(np.sum(stop), np.pi*20**2, rel_tol=1e-3)


if __name__ == '__main__':
    test_area_circle()
    test_area_annulus()
