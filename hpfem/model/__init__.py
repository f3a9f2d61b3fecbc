from .computational_model import ComputationalModel
from .adaptive_hp_fem_model import AdaptiveHPFEMModel
from .pde_data import LineSingularityData, SinSinData
