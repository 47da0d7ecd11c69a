import pytest
import numpy as np

import corowfsc
from corowfsc.util import pad_crop


class TestUtils:

    @pytest.mark.parametrize("test_input, expected", [
        (0, 0),
        (5, 6),
        (5.1, 6),
        (-2, -2),
        (-1, 0),
    ])
    def test_ceil_even(cls, test_input, expected):
        ret = corowfsc.util.ceil_even(test_input)
        assert ret % 2 == 0
        assert ret == expected

    @pytest.mark.parametrize("test_input, expected", [
        (6, 7),
        (5, 5),
        (-2, -1),
    ])
    def test_ceil_odd(cls, test_input, expected):
        ret = corowfsc.util.ceil_odd(test_input)
        assert ret % 2 != 0
        assert ret == expected

    def test_radial_grid(cls):
        axis = corowfsc.util.create_axis(8, 1.)
        RHO = corowfsc.util.radial_grid(axis)
        assert RHO.shape == (8, 8)
        assert RHO[4, 4] == 0
        assert RHO[4, 7] == pytest.approx(3.)
        assert RHO[0, 4] == pytest.approx(4.)

        RHO = corowfsc.util.radial_grid(axis, xStretch=2.)
        assert RHO[4, 7] == pytest.approx(1.5)
        assert RHO[0, 4] == pytest.approx(4.)

        THETA = corowfsc.util.azimuthal_grid(axis)
        assert THETA[4, 7] == pytest.approx(0.)
        assert THETA[7, 4] == pytest.approx(np.pi/2)

    @pytest.mark.parametrize("N, centering, expected", [
        (4, 'pixel', [-2., -1., 0., 1.]),
        (4, 'interpixel', [-1.5, -0.5, 0.5, 1.5]),
        (5, 'pixel', [-2., -1., 0., 1., 2.]),
        (5, 'interpixel', [-2., -1., 0., 1., 2.]),
    ])
    def test_create_axis(cls, N, centering, expected):
        axis = corowfsc.util.create_axis(N, 1., centering=centering)
        assert np.allclose(axis, expected)


def test_pad_crop_shapes():
    ret = pad_crop(np.zeros((10, 10)), 20)
    assert ret.shape == (20, 20)

    ret = pad_crop(np.zeros((5, 6)), (11, 12))
    assert ret.shape == (11, 12)


def test_pad_crop_keeps_center_pixel():
    arrayIn = np.zeros((6, 6))
    arrayIn[3, 3] = 1.
    for N in (4, 5, 8, 9):
        arrayOut = pad_crop(arrayIn, N)
        assert arrayOut[N//2, N//2] == 1.
        assert np.sum(arrayOut) == 1.


def test_pad_crop_chained_is_order_independent():
    arrayIn = np.arange(49.).reshape((7, 7))
    first = pad_crop(pad_crop(arrayIn, 10), 6)
    second = pad_crop(pad_crop(arrayIn, 6), 10)
    assert np.array_equal(pad_crop(first, 6), pad_crop(second, 6))


def test_pad_crop_extrapval_and_copy():
    arrayIn = np.ones((2, 2), dtype=complex)
    arrayOut = pad_crop(arrayIn, 4, extrapval=3)
    assert arrayOut.dtype == complex
    assert arrayOut[0, 0] == 3
    assert np.sum(arrayOut == 1) == 4

    same = pad_crop(arrayIn, 2)
    same[0, 0] = 5
    assert arrayIn[0, 0] == 1


def test_pad_crop_bad_outsize():
    with pytest.raises(TypeError):
        pad_crop(np.zeros((4, 4)), (4, 4, 4))
    with pytest.raises(TypeError):
        pad_crop(np.zeros((4, 4)), 0)


if __name__ == '__main__':
    test_pad_crop_shapes()
    test_pad_crop_keeps_center_pixel()
    test_pad_crop_chained_is_order_independent()
    test_pad_crop_extrapval_and_copy()
