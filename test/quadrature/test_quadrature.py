import numpy as np
import pytest

from hpfem.quadrature import (GaussLegendreQuadrature, TriangleQuadrature,
                              QuadrangleQuadrature)


class TestGaussLegendre:
    @pytest.mark.parametrize("n", [1, 2, 3, 5])
    def test_exactness(self, n):
        qf = GaussLegendreQuadrature(n)
        x, w = qf.get_quadrature_points_and_weights()
        assert len(qf) == n
        for k in range(2*n):
            exact = 2/(k + 1) if k % 2 == 0 else 0.0
            np.testing.assert_allclose(np.sum(w*x**k), exact, atol=1e-13)

    def test_invalid(self):
        with pytest.raises(ValueError):
            GaussLegendreQuadrature(0)


class TestTriangleQuadrature:
    @pytest.mark.parametrize("q", [1, 2, 4, 7])
    def test_moments(self, q):
        qf = TriangleQuadrature(q)
        x, w = qf.get_quadrature_points_and_weights()
        assert x.shape == (len(w), 2)
        np.testing.assert_allclose(np.sum(w), 2.0)
        np.testing.assert_allclose(np.sum(w*x[:, 0]), -2/3)
        np.testing.assert_allclose(np.sum(w*x[:, 1]), -2/3)
        # the points lie inside the reference triangle
        assert np.all(x >= -1 - 1e-14)
        assert np.all(x[:, 0] + x[:, 1] <= 1e-14)

    def test_second_moments(self):
        x, w = TriangleQuadrature(2).get_quadrature_points_and_weights()
        np.testing.assert_allclose(np.sum(w*x[:, 0]**2), 2/3)
        np.testing.assert_allclose(np.sum(w*x[:, 0]*x[:, 1]), 0.0, atol=1e-14)


class TestQuadrangleQuadrature:
    def test_moments(self):
        qf = QuadrangleQuadrature(4)
        x, w = qf.get_quadrature_points_and_weights()
        np.testing.assert_allclose(np.sum(w), 4.0)
        np.testing.assert_allclose(np.sum(w*x[:, 0]**2*x[:, 1]**2), 4/9)
        np.testing.assert_allclose(np.sum(w*x[:, 0]**3*x[:, 1]), 0.0, atol=1e-14)

    def test_point_and_weight(self):
        qf = QuadrangleQuadrature(2)
        p, w = qf[0]
        assert p.shape == (2, )
        assert w == qf.weights[0]
