"""Unit tests for check.py."""
import numpy as np
import pytest

from corowfsc import check
from corowfsc.check import (ConfigurationError, ModelInputError,
                            NumericalSingularity)


class CheckTestError(Exception):
    pass


@pytest.mark.parametrize("checker, good, bad", [
    (check.real_positive_scalar, [1, 0.5, np.float64(2.)],
     [-1, 0, 1j, (1.,), [5, 5], 'v0']),
    (check.real_nonnegative_scalar, [0, 1.5],
     [-1, 1j, (1.,), [5, 5], 'v0']),
    (check.real_scalar, [-3, 0, 2.5],
     [1j, (1.,), [5, 5], 'v0']),
    (check.positive_scalar_integer, [1, np.int64(7)],
     [0, -1, 1.0, True, 'v0']),
    (check.nonnegative_scalar_integer, [0, 3],
     [-1, 1.5, False, 'v0']),
    (check.scalar_integer, [-2, 0, 5],
     [1.5, 1j, True, 'v0']),
    (check.oneD_array, [[1, 2, 3], np.ones(4)],
     [np.ones((2, 2)), 5, ['a', 'b']]),
    (check.twoD_array, [np.ones((2, 3)), [[1, 2], [3, 4]]],
     [np.ones(3), np.ones((2, 2, 2)), [['a']]]),
    (check.twoD_square_array, [np.eye(3)],
     [np.ones((2, 3)), np.ones(3)]),
])
def test_checker_valid_and_invalid(checker, good, bad):
    for var in good:
        checker(var, 'var', CheckTestError)
    for var in bad:
        with pytest.raises(CheckTestError):
            checker(var, 'var', CheckTestError)


def test_checker_bad_vname_and_vexc():
    with pytest.raises(check.CheckException):
        check.real_positive_scalar(1, (1,), CheckTestError)
    with pytest.raises(check.CheckException):
        check.real_positive_scalar(1, 'rps', 'CheckTestError')


def test_centering():
    assert check.centering('pixel') == 'pixel'
    assert check.centering('interpixel') == 'interpixel'
    with pytest.raises(ValueError):
        check.centering('center')
    with pytest.raises(TypeError):
        check.centering(1)


def test_is_dict_and_is_bool():
    check.is_dict({}, 'inputs')
    check.is_bool(np.bool_(True), 'flag')
    with pytest.raises(TypeError):
        check.is_dict([], 'inputs')
    with pytest.raises(TypeError):
        check.is_bool(1, 'flag')


def test_finite_field_passes_finite_values_through():
    E = np.ones((3, 3), dtype=complex)
    assert check.finite_field(E, 'P1') is E


@pytest.mark.parametrize("badValue", [np.nan, np.inf, complex(0, np.nan)])
def test_finite_field_raises_model_input_error(badValue):
    E = np.ones((3, 3), dtype=complex)
    E[1, 2] = badValue
    with pytest.raises(ModelInputError) as info:
        check.finite_field(E, 'DM2')
    assert info.value.plane == 'DM2'
    assert 'DM2' in str(info.value)


def test_error_types():
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(ModelInputError, ValueError)
    assert issubclass(NumericalSingularity, ArithmeticError)

    err = NumericalSingularity(-3.5, 'singular matrix')
    assert err.log10reg == -3.5
    assert 'singular matrix' in str(err)


if __name__ == '__main__':
    test_checker_bad_vname_and_vexc()
    test_centering()
    test_error_types()
