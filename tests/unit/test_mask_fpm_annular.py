"""Unit test suite for corowfsc.mask.gen_annular_fpm()."""
from math import isclose

import numpy as np
import pytest

from corowfsc.mask import gen_annular_fpm


def test_area_spot():
    inputs = {"pixresFPM": 6,
              "rhoInner": 3,
              "rhoOuter": np.inf,
              "centering": "pixel",
              }
    fpm = gen_annular_fpm(inputs)

    area = np.sum(1 - fpm)
    areaExpected = np.pi * inputs["rhoInner"]**2 * inputs["pixresFPM"]**2
    assert isclose(area, areaExpected, rel_tol=1e-3)
    # Cropped to the spot, with the array center on a pixel
    assert fpm.shape == (38, 38)
    assert fpm[19, 19] == 0


def test_area_annulus():
    inputs = {"pixresFPM": 6,
              "rhoInner": 3,
              "rhoOuter": 10,
              "centering": "pixel",
              }
    fpm = gen_annular_fpm(inputs)

    area = np.sum(fpm)
    areaExpected = (np.pi * inputs["pixresFPM"]**2 *
                    (inputs["rhoOuter"]**2 - inputs["rhoInner"]**2))
    assert isclose(area, areaExpected, rel_tol=1e-3)


def test_spot_transmission():
    inputs = {"pixresFPM": 4, "rhoInner": 2.8, "rhoOuter": np.inf,
              "FPMampFac": 0.1}
    fpm = gen_annular_fpm(inputs)
    N = fpm.shape[0]

    assert fpm[N//2, N//2] == pytest.approx(0.1)
    assert fpm[0, 0] == pytest.approx(1.)
    assert np.min(fpm) >= 0.1 - 1e-12


def test_interpixel_centering_is_symmetric():
    inputs = {"pixresFPM": 5, "rhoInner": 3, "rhoOuter": 8,
              "centering": "interpixel"}
    fpm = gen_annular_fpm(inputs)

    assert np.allclose(fpm, np.fliplr(fpm), atol=1e-8)
    assert np.allclose(fpm, np.flipud(fpm), atol=1e-8)


def test_bad_radius():
    with pytest.raises(TypeError):
        gen_annular_fpm({"pixresFPM": 4, "rhoInner": -1, "rhoOuter": 5})


if __name__ == '__main__':
    test_area_spot()
    test_area_annulus()
    test_spot_transmission()
