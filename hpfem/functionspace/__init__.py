from .shapeset import H1Shapeset, PrecalcShapeset
from .h1_space import H1Space, BCType
from .solution import Solution
