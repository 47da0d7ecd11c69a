import math

import numpy as np

from corowfsc.config.Object import Object
from corowfsc.config.Probe import Probe
from corowfsc.config import yaml_loader


def _plane():
    return Object(compact=Object(), full=Object())


class ModelParameters(Object):
    """
    Instrument, bandpass, DM and control settings for one run.

    The nested records for every optical plane and DM exist from the start,
    so configuration code can assign `mp.P1.compact.Nbeam` directly.
    `corowfsc.setup.flesh_out_workspace` fills in every derived quantity.
    """

    def __init__(self, **kwargs):
        self.P1 = _plane()
        self.P2 = _plane()
        self.P3 = _plane()
        self.P4 = _plane()
        self.F3 = _plane()
        self.Fend = Object(compact=Object(), full=Object(), eval=Object(),
                           corr=Object(), score=Object())
        self.dm1 = Object(compact=Object(), full=Object())
        self.dm2 = Object(compact=Object(), full=Object())
        self.compact = Object(star=Object())
        self.full = Object()
        self.star = Object()
        self.jac = Object(star=Object())
        self.est = Object()
        self.ctrl = Object()
        self.detector = Object()
        self.path = Object()
        super().__init__(**kwargs)

    @staticmethod
    def from_yaml(yaml_str):
        """
        Build parameters from a YAML string.

        Mappings become `Object` records, `!eval` values are lazy Python
        expressions that may refer to `mp`, and `!Probe` builds a `Probe`.
        """
        import corowfsc

        eval_locals = {}
        fields = yaml_loader.load_from_str(
            yaml_str,
            {'np': np, 'math': math, 'corowfsc': corowfsc},
            eval_locals,
            {'!Probe': yaml_loader.object_constructor(Probe)},
        )
        mp = ModelParameters(**fields)
        eval_locals['mp'] = mp
        return mp

    @staticmethod
    def from_yaml_file(path):
        """Build parameters from a YAML file. See `from_yaml`."""
        with open(path, 'r') as f:
            return ModelParameters.from_yaml(f.read())
