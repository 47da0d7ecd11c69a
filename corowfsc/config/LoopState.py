import copy

import numpy as np

from corowfsc.config.Object import Object


class LoopState(Object):
    """
    The mutable part of a WFSC run.

    Holds the DM voltage commands, the previous delta commands, the indices
    of the actuators currently used by the controller, and the current PSF
    normalization values. The model parameters stay frozen for the whole
    loop; everything that changes between iterations lives here and is
    passed explicitly to the models, estimator and controller.
    """

    def __init__(self, **kwargs):
        self.Itr = 0
        self.dm_ind = np.array([], dtype=int)  # DMs used by the controller this iteration
        self.I00compact = None
        self.I00eval = None
        self.I00full = None
        super().__init__(**kwargs)

    @staticmethod
    def from_parameters(mp):
        """Start a state from the configured starting DM voltages."""
        state = LoopState(dm_ind=np.array(mp.dm_ind, dtype=int).copy())
        for idm in (1, 2):
            dm = mp['dm%d' % idm]
            if 'Nact' not in dm:
                continue
            if 'V' in dm:
                V = np.array(dm.V, dtype=float)
            else:
                V = np.zeros((dm.Nact, dm.Nact))
            state['dm%dV' % idm] = V
            state['dm%ddV' % idm] = np.zeros_like(V)
            if 'act_ele' in dm:
                state['dm%d_act_ele' % idm] = np.array(dm.act_ele, dtype=int)
            else:
                state['dm%d_act_ele' % idm] = np.arange(dm.Nact**2, dtype=int)
        return state

    def command(self, idm):
        """Voltage command array of DM `idm`, or None if it has none."""
        return self.get('dm%dV' % idm)

    def set_command(self, idm, V):
        self['dm%ddV' % idm] = V - self.command(idm)
        self['dm%dV' % idm] = V

    def act_ele(self, idm):
        """Indices of the actuators of DM `idm` used by the controller."""
        return self['dm%d_act_ele' % idm]

    def with_command(self, idm, V):
        """Return a copy of this state whose DM `idm` command is `V`."""
        other = LoopState(**copy.copy(self.data))
        other['dm%dV' % idm] = V
        return other
