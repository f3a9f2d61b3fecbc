from .quadrature import Quadrature

from .gauss_legendre import GaussLegendreQuadrature
from .triangle import TriangleQuadrature
from .quadrangle import QuadrangleQuadrature
