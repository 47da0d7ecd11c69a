from corowfsc.config.Eval import Eval
from corowfsc.config.Object import Object
from corowfsc.config import yaml_loader
from corowfsc.config.Probe import Probe
from corowfsc.config.ModelVariables import ModelVariables
from corowfsc.config.ModelParameters import ModelParameters
from corowfsc.config.LoopState import LoopState
