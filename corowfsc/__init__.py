from . import config
from . import check
from . import util
from . import prop
from . import mask
from . import dm
from . import coronagraph
from . import model
from . import imaging
from . import est
from . import ctrl
from . import setup
from . import wfsc

from .check import ConfigurationError, ModelInputError, NumericalSingularity
from .setup import flesh_out_workspace
from .wfsc import loop
