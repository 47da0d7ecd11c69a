"""
Input-checking functions and the error types raised by the models.
"""
import numbers

import numpy as np


class CheckException(Exception):
    pass


class ConfigurationError(ValueError):
    """
    Inconsistent or unknown configuration.

    Raised for unknown coronagraph, layout, estimator or controller names,
    mask arrays of the wrong size, and DM/array size mismatches. Always raised
    during setup, before any propagation.
    """


class NumericalSingularity(ArithmeticError):
    """The regularized EFC solve failed at one regularization value."""

    def __init__(self, log10reg, reason=''):
        self.log10reg = log10reg
        self.reason = reason
        msg = 'EFC solve failed at log10reg = %s' % (log10reg,)
        if reason:
            msg += ': ' + reason
        super().__init__(msg)


class ModelInputError(ValueError):
    """A non-finite field entered a propagation stage."""

    def __init__(self, plane, message=None):
        self.plane = plane
        if message is None:
            message = 'Non-finite E-field values entering plane %s.' % plane
        super().__init__(message)


int_types = (int, np.integer)
_numeric_kinds = 'biufc'


def _checkname(vname):
    """Internal check that vname can be printed in an error message."""
    if not isinstance(vname, (str, bytes)):
        raise CheckException('vname must be a string when fed to check '
                             'functions')


def _checkexc(vexc):
    """Internal check that vexc can be raised."""
    if not isinstance(vexc, type) or not issubclass(vexc, Exception):
        raise CheckException('vexc must be an Exception, or an object '
                             'descended from one when fed to check functions')


def finite_field(E, plane):
    """
    Raise ModelInputError if an E-field holds NaN or Inf values.

    Parameters
    ----------
    E : array_like
        Field entering the plane.
    plane : str
        Name of the plane, reported in the error.

    Returns
    -------
    E
        Same value as input

    """
    if not np.all(np.isfinite(E)):
        raise ModelInputError(plane)
    return E


def centering(var):
    """
    Check whether an object is in the values ['pixel', 'interpixel'].

    Parameters
    ----------
    var
        Variable to check

    Returns
    -------
    var
        Same value as input

    """
    _VALID_CENTERING = ['pixel', 'interpixel']
    _CENTERING_ERR = ('Invalid centering specification. Options: '
                      '{}'.format(_VALID_CENTERING))

    if not isinstance(var, str):
        raise TypeError("'centering' value must be a string'")
    if var not in _VALID_CENTERING:
        raise ValueError(_CENTERING_ERR)
    return var


def is_dict(var, vname):
    """Raise TypeError unless var is a dict (a record is one)."""
    _checkname(vname)

    if not isinstance(var, dict):
        raise TypeError(vname + ' must be a dictionary')
    return var


def is_bool(var, vname):
    """Raise TypeError unless var is a Python or numpy bool."""
    _checkname(vname)

    if not isinstance(var, (bool, np.bool_)):
        raise TypeError(vname + ' must be a bool')
    return var


def _real(var, vname, vexc):
    _checkname(vname)
    _checkexc(vexc)

    if not isinstance(var, numbers.Number):
        raise vexc(vname + ' must be scalar')
    if not np.isrealobj(var):
        raise vexc(vname + ' must be real')
    return var


def _integer(var, vname, vexc):
    _checkname(vname)
    _checkexc(vexc)

    # bool is an int subclass but never a valid count or index
    if not isinstance(var, int_types) or isinstance(var, bool):
        raise vexc(vname + ' must be integer')
    return var


def _array(var, ndim, vname, vexc):
    _checkname(vname)
    _checkexc(vexc)

    arr = np.asarray(var)
    if arr.ndim != ndim:
        raise vexc('%s must be a %dD array' % (vname, ndim))
    if arr.dtype.kind not in _numeric_kinds:
        raise vexc('%s must be a real or complex %dD array' % (vname, ndim))
    return arr


def real_scalar(var, vname, vexc):
    """
    Check that var is a real number.

    Parameters
    ----------
    var
        Variable to check
    vname : str
        Name used in the error message
    vexc : type
        Exception class raised on failure

    Returns
    -------
    var
        Same value as input

    """
    return _real(var, vname, vexc)


def real_positive_scalar(var, vname, vexc):
    """Check that var is a real number greater than zero."""
    if _real(var, vname, vexc) <= 0:
        raise vexc(vname + ' must be positive')
    return var


def real_nonnegative_scalar(var, vname, vexc):
    """Check that var is a real number no less than zero."""
    if _real(var, vname, vexc) < 0:
        raise vexc(vname + ' must be nonnegative')
    return var


def scalar_integer(var, vname, vexc):
    """Check that var is an integer of any sign. Bools are rejected."""
    return _integer(var, vname, vexc)


def positive_scalar_integer(var, vname, vexc):
    """Check that var is an integer greater than zero."""
    if _integer(var, vname, vexc) <= 0:
        raise vexc(vname + ' must be positive')
    return var


def nonnegative_scalar_integer(var, vname, vexc):
    """Check that var is an integer no less than zero."""
    if _integer(var, vname, vexc) < 0:
        raise vexc(vname + ' must be nonnegative')
    return var


def oneD_array(var, vname, vexc):
    """Return var as a 1-D numeric ndarray, or raise vexc."""
    return _array(var, 1, vname, vexc)


def twoD_array(var, vname, vexc):
    """Return var as a 2-D numeric ndarray, or raise vexc."""
    return _array(var, 2, vname, vexc)


def twoD_square_array(var, vname, vexc):
    """Return var as a square 2-D numeric ndarray, or raise vexc."""
    arr = _array(var, 2, vname, vexc)
    if arr.shape[0] != arr.shape[1]:
        raise vexc(vname + ' must be a square 2D array')
    return arr
