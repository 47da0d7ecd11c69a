"""Unit test suite for corowfsc.setup.set_jacobian_modal_weights()"""
import numpy as np
import pytest

import corowfsc


def _mp(estimator, Nsbp, Nstar=1, starWeights=None):
    mp = corowfsc.config.ModelParameters()
    mp.estimator = estimator
    mp.Nsbp = Nsbp
    mp.compact.star.count = Nstar
    mp.jac.star.weights = np.ones(Nstar) if starWeights is None \
        else starWeights
    return mp


def test_weights_one_mode():
    mp = _mp('perfect', 1)
    corowfsc.setup.set_jacobian_modal_weights(mp)

    assert mp.jac.Nmode == 1
    assert np.allclose(mp.jac.weights, [1, ])
    assert np.allclose(mp.jac.sbp_inds, [0])
    assert np.allclose(mp.jac.star_inds, [0])


def test_weights_perfect_estimator_halves_end_subbands():
    mp = _mp('perfect', 3)
    corowfsc.setup.set_jacobian_modal_weights(mp)

    assert mp.jac.Nmode == 3
    assert np.allclose(mp.jac.weights, [0.25, 0.5, 0.25])
    assert np.allclose(mp.jac.weightMat, [[0.25], [0.5], [0.25]])
    assert np.allclose(mp.jac.sbp_inds, [0, 1, 2])


def test_weights_probing_estimator_even_subbands():
    mp = _mp('pwp-bp', 3)
    corowfsc.setup.set_jacobian_modal_weights(mp)

    assert np.allclose(mp.jac.weights, 1/3*np.ones(3),
                       atol=np.finfo(float).eps)


def test_mode_order_with_multiple_stars():
    mp = _mp('perfect', 3, Nstar=2, starWeights=np.array([1., 0.5]))
    corowfsc.setup.set_jacobian_modal_weights(mp)

    # imode = iStar*Nsbp + si
    assert mp.jac.Nmode == 6
    assert np.array_equal(mp.jac.sbp_inds, [0, 1, 2, 0, 1, 2])
    assert np.array_equal(mp.jac.star_inds, [0, 0, 0, 1, 1, 1])
    assert np.allclose(mp.jac.weights,
                       [0.25, 0.5, 0.25, 0.125, 0.25, 0.125])
    assert mp.jac.weightMat.shape == (3, 2)


def test_star_weights_must_match_star_count():
    mp = _mp('perfect', 1, Nstar=2, starWeights=np.ones(3))
    with pytest.raises(corowfsc.ConfigurationError):
        corowfsc.setup.set_jacobian_modal_weights(mp)


if __name__ == '__main__':
    test_weights_one_mode()
    test_weights_perfect_estimator_halves_end_subbands()
    test_mode_order_with_multiple_stars()
