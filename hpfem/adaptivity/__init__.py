from .reference import RefSystem
from .estimator import (HPErrorEstimator, ErrorType, ELEMENT_ERROR_ABS,
                        ELEMENT_ERROR_REL, h1_form, h1_error)
from .candidates import (RefinementKind, CandList, Candidate, ProjBasedSelector,
                         make_candidates)
from .hp_adapt import HPAdapt, adaptive_options, mark
