"""Unit tests of the propagation primitives."""
import numpy as np
import pytest

from corowfsc import prop
from corowfsc.mask import gen_pupil_simple
from corowfsc.util import radial_grid


@pytest.mark.parametrize("centering, expected", [
    ('pixel', (3, 2)),
    ('interpixel', (2, 1)),
])
def test_relay_rotates_about_array_center(centering, expected):
    E = np.zeros((8, 8))
    E[5, 6] = 1
    assert np.array_equal(prop.relay(E, 2, centering), E)
    Eout = prop.relay(E, 1, centering)
    assert Eout[expected] == 1
    assert np.sum(Eout) == 1


def test_relay_bad_centering():
    with pytest.raises(ValueError):
        prop.relay(np.ones((4, 4)), 1, 'corner')


def test_ptp():
    rng = np.random.default_rng(1)
    E = rng.standard_normal((32, 32)) + 1j*rng.standard_normal((32, 32))

    # No distance, no change
    assert np.allclose(prop.ptp(E, 32e-3, 600e-9, 0.), E)

    # Energy is conserved
    Eout = prop.ptp(E, 32e-3, 600e-9, 0.1)
    assert np.sum(np.abs(Eout)**2) == pytest.approx(np.sum(np.abs(E)**2))

    # Propagating back undoes it
    assert np.allclose(prop.ptp(Eout, 32e-3, 600e-9, -0.1), E)

    with pytest.raises(ValueError):
        prop.ptp(np.ones((4, 6)), 32e-3, 600e-9, 0.1)


@pytest.mark.parametrize("centering", ['pixel', 'interpixel'])
def test_mft_round_trip_is_a_relay(centering):
    N = 16
    dx = 1e-3
    wvl = 1e-6
    fl = 1.
    dxi = wvl*fl/(N*dx)  # Critically sampled
    rng = np.random.default_rng(2)
    E = rng.standard_normal((N, N)) + 1j*rng.standard_normal((N, N))

    Efoc = prop.mft_p2f(E, fl, wvl, dx, dxi, N, dxi, N, centering)
    assert np.sum(np.abs(Efoc)**2) == pytest.approx(np.sum(np.abs(E)**2))

    Eout = prop.mft_f2p(Efoc, fl, wvl, dxi, dxi, dx, N, centering)
    assert np.allclose(Eout, prop.relay(E, 1, centering), atol=1e-10)


def test_mft_p2f_psf_peak():
    Nbeam = 40
    pupil = gen_pupil_simple({'Nbeam': Nbeam, 'Npad': 42, 'OD': 1.})
    dx = 1./Nbeam
    Efoc = prop.mft_p2f(pupil, 1., 1., dx, 0.25, 33, 0.25, 33)
    # Peak of a pixel-centered PSF is on the center pixel
    assert np.unravel_index(np.argmax(np.abs(Efoc)), Efoc.shape) == (16, 16)
    assert np.abs(Efoc[16, 16]) == pytest.approx(np.sum(pupil)*dx*0.25)


@pytest.mark.parametrize("charge, shouldBeDark", [(0, False), (2, True)])
def test_mft_p2v2p(charge, shouldBeDark):
    Nbeam = 40
    pupil = gen_pupil_simple({'Nbeam': Nbeam, 'Npad': 48, 'OD': 1.})
    post = prop.mft_p2v2p(pupil, charge, Nbeam/2., 0.3, 5)
    assert post.shape == pupil.shape

    inner = radial_grid(np.arange(-24, 24)) < 0.8*Nbeam/2.
    if shouldBeDark:
        assert np.max(np.abs(post[inner])) < 0.05
    else:
        expected = prop.relay(pupil, 1)
        assert np.max(np.abs(post - expected)[inner]) < 0.05


def test_gen_tukey_for_vortex():
    RHO = radial_grid(np.arange(-20, 20))
    window = prop.gen_tukey_for_vortex(20, RHO, 0.5)
    assert window.shape == RHO.shape
    assert window[20, 20] == pytest.approx(1.)
    assert np.all(window[RHO > 10] == 0)
    assert np.all((window >= 0) & (window <= 1))


if __name__ == '__main__':
    test_mft_round_trip_is_a_relay('pixel')
