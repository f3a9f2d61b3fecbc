import numpy as np

from ..decorator import cartesian
from ..functionspace.h1_space import BCType


class LineSingularityData:
    """
        -\\Delta u = f on (-1, 1)^2
        u = cos(K x)            for x <= 0
        u = cos(K x) + x^alpha  for x > 0

    The solution has a singularity of strength alpha along the line x = 0.
    """
    def __init__(self, alpha=2.01, K=np.pi/2):
        self.alpha = alpha
        self.K = K

    def domain(self):
        return [-1, 1, -1, 1]

    def bc_types(self, marker):
        return BCType.ESSENTIAL

    @cartesian
    def solution(self, p):
        x = p[..., 0]
        xp = np.maximum(x, 0.0)
        return np.cos(self.K*x) + np.where(x > 0, xp**self.alpha, 0.0)

    @cartesian
    def source(self, p):
        x = p[..., 0]
        xp = np.maximum(x, 0.0)
        a = self.alpha
        val = self.K**2*np.cos(self.K*x)
        return val - np.where(x > 0, a*(a - 1)*xp**(a - 2), 0.0)

    @cartesian
    def gradient(self, p):
        x = p[..., 0]
        xp = np.maximum(x, 0.0)
        gx = -self.K*np.sin(self.K*x) + np.where(x > 0, self.alpha*xp**(self.alpha - 1), 0.0)
        return np.stack((gx, np.zeros_like(gx)), axis=-1)

    @cartesian
    def dirichlet(self, p):
        return self.solution(p)


class SinSinData:
    """
        -\\Delta u = f on (0, 1)^2
        u = sin(pi*x)*sin(pi*y)
    """
    def domain(self):
        return [0, 1, 0, 1]

    def bc_types(self, marker):
        return BCType.ESSENTIAL

    @cartesian
    def solution(self, p):
        x = p[..., 0]
        y = p[..., 1]
        pi = np.pi
        return np.sin(pi*x)*np.sin(pi*y)

    @cartesian
    def source(self, p):
        x = p[..., 0]
        y = p[..., 1]
        pi = np.pi
        return 2*pi*pi*np.sin(pi*x)*np.sin(pi*y)

    @cartesian
    def gradient(self, p):
        x = p[..., 0]
        y = p[..., 1]
        pi = np.pi
        return np.stack((
            pi*np.cos(pi*x)*np.sin(pi*y),
            pi*np.sin(pi*x)*np.cos(pi*y)), axis=-1)

    @cartesian
    def dirichlet(self, p):
        return self.solution(p)
