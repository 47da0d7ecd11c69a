from corowfsc.model import models, jacobians
from corowfsc.model.models import (compact, compact_general, full,
                                   full_fourier, full_proper,
                                   compact_input_field)
from corowfsc.model.jacobians import (jacobian, compute_column,
                                      apply_ties_to_jac, validate_jacobian)
