import pickle

import numpy as np
import pytest

import corowfsc
from corowfsc.config import LoopState, ModelParameters, Object


def test_can_create_mp_object():
    mp = ModelParameters()
    assert mp is not None
    assert isinstance(mp.P1.compact, Object)
    assert isinstance(mp.jac.star, Object)


def test_keyword_records_keep_nested_defaults():
    mp = ModelParameters(P1=Object(D=2.4), dm1=Object(Nact=8))
    assert mp.P1.D == 2.4
    assert isinstance(mp.P1.full, Object)
    assert mp.dm1.Nact == 8
    assert isinstance(mp.dm1.compact, Object)


class _Record(Object):

    def __init__(self, **kwargs):
        self.P1 = Object(D=1., compact=Object(Nbeam=100, Narr=102))
        self.Nitr = 3
        super().__init__(**kwargs)


def test_partial_nested_record_is_merged_into_defaults():
    rec = _Record(P1=Object(compact=Object(Nbeam=50)), Nitr=5)
    assert rec.Nitr == 5
    assert rec.P1.D == 1.
    assert rec.P1.compact.Nbeam == 50
    assert rec.P1.compact.Narr == 102

    # Defaults of one record are not shared with another
    other = _Record()
    assert other.P1.compact.Nbeam == 100


def test_item_and_attribute_access():
    obj = Object(a=1)
    obj['b'] = 2
    assert obj.b == 2
    assert obj['a'] == 1
    assert 'a' in obj
    assert obj.get('missing', 3) == 3
    with pytest.raises(AttributeError):
        obj.missing
    with pytest.raises(KeyError):
        obj['missing']


def test_freeze_covers_nested_records():
    mp = ModelParameters()
    mp.P1.compact.Nbeam = 10
    mp.freeze()

    with pytest.raises(AttributeError):
        mp.Nitr = 3
    with pytest.raises(AttributeError):
        mp.P1.compact.Nbeam = 20
    assert mp.P1.compact.Nbeam == 10

    mp.thaw()
    mp.P1.compact.Nbeam = 20
    assert mp.P1.compact.Nbeam == 20


def test_loop_state_from_parameters():
    mp = ModelParameters()
    mp.dm_ind = [1]
    mp.dm1.Nact = 4
    mp.dm1.V = np.ones((4, 4))
    mp.dm2.Nact = 3

    state = LoopState.from_parameters(mp)
    assert np.array_equal(state.dm_ind, [1])
    assert np.array_equal(state.command(1), np.ones((4, 4)))
    assert np.array_equal(state.command(2), np.zeros((3, 3)))
    assert np.array_equal(state.act_ele(1), np.arange(16))
    assert state.I00compact is None

    # The state holds its own copy of the starting voltages
    state.command(1)[0, 0] = 5.
    assert mp.dm1.V[0, 0] == 1.


def test_loop_state_commands():
    state = LoopState(dm1V=np.zeros((2, 2)), dm1dV=np.zeros((2, 2)))
    state.set_command(1, 3*np.ones((2, 2)))
    assert np.array_equal(state.dm1dV, 3*np.ones((2, 2)))

    other = state.with_command(1, np.ones((2, 2)))
    assert np.array_equal(other.command(1), np.ones((2, 2)))
    assert np.array_equal(state.command(1), 3*np.ones((2, 2)))
    assert isinstance(other, LoopState)


def test_records_can_be_pickled():
    state = LoopState(dm1V=np.arange(4.).reshape((2, 2)))
    out = Object(state=state, InormHist=np.array([1e-4, 1e-5]))

    loaded = pickle.loads(pickle.dumps(out))
    assert np.array_equal(loaded.state.command(1), state.command(1))
    assert np.array_equal(loaded.InormHist, out.InormHist)


def test_package_exports():
    assert corowfsc.ConfigurationError is corowfsc.check.ConfigurationError
    assert callable(corowfsc.flesh_out_workspace)
    assert callable(corowfsc.loop)


if __name__ == '__main__':
    test_can_create_mp_object()
    test_freeze_covers_nested_records()
    test_loop_state_from_parameters()
