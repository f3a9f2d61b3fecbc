import numpy as np

from .quadrature import Quadrature
from .gauss_legendre import GaussLegendreQuadrature


class QuadrangleQuadrature(Quadrature):
    """Tensor Gauss rule on the reference square [-1, 1]^2, exact for
    polynomials of degree `index` in each variable."""
    def make(self, index: int):
        qf = GaussLegendreQuadrature(index//2 + 1, dtype=self.dtype)
        x, w = qf.get_quadrature_points_and_weights()
        n = len(x)
        quadpts = np.zeros((n*n, 2), dtype=self.dtype)
        quadpts[:, 0] = np.tile(x, n)
        quadpts[:, 1] = np.repeat(x, n)
        weights = np.einsum('i, j->ij', w, w).reshape(-1)
        return quadpts, weights
