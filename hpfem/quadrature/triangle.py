import numpy as np

from .quadrature import Quadrature
from .gauss_legendre import GaussLegendreQuadrature


class TriangleQuadrature(Quadrature):
    """Collapsed Gauss rule on the reference triangle (-1,-1), (1,-1), (-1,1).

    The square [-1, 1]^2 is mapped onto the triangle by
    x = (1 + a)(1 - b)/2 - 1, y = b, whose Jacobian (1 - b)/2 adds one degree
    to the integrand; the rule is exact for total degree `index`.
    """
    def make(self, index: int):
        qf = GaussLegendreQuadrature((index + 1)//2 + 1, dtype=self.dtype)
        x, w = qf.get_quadrature_points_and_weights()
        n = len(x)
        a = np.tile(x, n)
        b = np.repeat(x, n)
        quadpts = np.zeros((n*n, 2), dtype=self.dtype)
        quadpts[:, 0] = 0.5*(1 + a)*(1 - b) - 1
        quadpts[:, 1] = b
        weights = np.einsum('i, j->ji', w, w).reshape(-1)*0.5*(1 - b)
        return quadpts, weights
