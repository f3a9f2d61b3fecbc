"""
Hierarchic H1 shape functions on the reference triangle (-1,-1), (1,-1),
(-1,1) and the reference square [-1,1]^2.

The local basis of an element is ordered as

    vertex functions (one per vertex),
    edge functions of degree 2..p_i on local edge i, for i = 0, 1, ...
    bubble functions,

where local edge i runs from local vertex i to local vertex i+1 and is
parametrized by r in [-1, 1] from its start to its end. On its own edge, the
edge function of degree k has the trace l_k(r) (Lobatto function) and it
vanishes on the other edges; vertex functions restricted to an edge are the
linear hat functions l_0, l_1.
"""
from functools import lru_cache
from typing import Sequence, Tuple, Optional

import numpy as np
from numpy.polynomial import legendre as L
from numpy.polynomial import Polynomial, Legendre

from ..typing import TensorLike, Order
from ..mesh.transform import TransformStack, TRIANGLE, QUADRANGLE
from ..mesh.refmap import vertex_shape_function
from ..quadrature import TriangleQuadrature, QuadrangleQuadrature


@lru_cache(maxsize=None)
def _lobatto_coef(k: int) -> Tuple[TensorLike, TensorLike]:
    """Legendre coefficients of l_k and of its derivative, k >= 2."""
    c = np.zeros(k + 1)
    c[k] = 1.0
    c[k - 2] = -1.0
    c /= np.sqrt(2*(2*k - 1))
    dc = np.zeros(k)
    dc[k - 1] = np.sqrt((2*k - 1)/2)
    return c, dc


def lobatto(k: int, x: TensorLike) -> Tuple[TensorLike, TensorLike]:
    """Value and derivative of the Lobatto function l_k."""
    if k == 0:
        return (1 - x)/2, np.full_like(x, -0.5)
    if k == 1:
        return (1 + x)/2, np.full_like(x, 0.5)
    c, dc = _lobatto_coef(k)
    return L.legval(x, c), L.legval(x, dc)


@lru_cache(maxsize=None)
def _kernel_poly(k: int) -> Tuple[Polynomial, Polynomial]:
    """The kernel function phi_{k-2} = 4 l_k / (1 - x^2) and its derivative."""
    c, _ = _lobatto_coef(k)
    lk = Legendre(c).convert(kind=Polynomial)
    q, r = divmod(lk, Polynomial([0.25, 0.0, -0.25]))
    return q, q.deriv()


def kernel(k: int, x: TensorLike) -> Tuple[TensorLike, TensorLike]:
    q, dq = _kernel_poly(k)
    return q(x), dq(x)


def legendre(n: int, x: TensorLike) -> Tuple[TensorLike, TensorLike]:
    c = np.zeros(n + 1)
    c[n] = 1.0
    return L.legval(x, c), L.legval(x, L.legder(c))


# quadrangle edge i: parameter r = a.x, blending b = b0 + g.x
_QUAD_EDGE = (
    (np.array([1.0, 0.0]), 0.5, np.array([0.0, -0.5])),
    (np.array([0.0, 1.0]), 0.5, np.array([0.5, 0.0])),
    (np.array([-1.0, 0.0]), 0.5, np.array([0.0, 0.5])),
    (np.array([0.0, -1.0]), 0.5, np.array([-0.5, 0.0])),
)

_TRI_GRAD_LAMBDA = np.array([[-0.5, -0.5], [0.5, 0.0], [0.0, 0.5]])


def barycentric(xi: TensorLike) -> TensorLike:
    x = xi[..., 0]
    y = xi[..., 1]
    return np.stack([-(x + y)/2, (1 + x)/2, (1 + y)/2], axis=-1)


def number_of_bubbles(shape: int, order: Order) -> int:
    if shape == TRIANGLE:
        p = order[0]
        return (p - 1)*(p - 2)//2
    return (order[0] - 1)*(order[1] - 1)


def number_of_local_dofs(shape: int, edge_orders: Sequence[int], order: Order) -> int:
    return shape + sum(p - 1 for p in edge_orders) + number_of_bubbles(shape, order)


def directional_edge_order(shape: int, i: int, order: Order) -> int:
    """Order an element contributes to its local edge i: quadrangle edges
    0 and 2 run along the first reference direction, edges 1 and 3 along the
    second one."""
    if shape == TRIANGLE:
        return order[0]
    return order[0] if i % 2 == 0 else order[1]


class H1Shapeset():
    """Evaluation of the hierarchic basis of one element shape."""
    def __init__(self, shape: int):
        if shape not in (TRIANGLE, QUADRANGLE):
            raise ValueError(f"unknown element shape with {shape} vertices")
        self.shape = shape

    def full_edge_orders(self, order: Order) -> Tuple[int, ...]:
        return tuple(directional_edge_order(self.shape, i, order)
                     for i in range(self.shape))

    def vertex_basis(self, xi: TensorLike):
        return vertex_shape_function(self.shape, xi)

    def edge_basis(self, i: int, p: int, xi: TensorLike):
        """Edge functions of degree 2..p on local edge i."""
        NP = xi.shape[0]
        n = max(p - 1, 0)
        phi = np.zeros((NP, n), dtype=xi.dtype)
        gphi = np.zeros((NP, n, 2), dtype=xi.dtype)
        if n == 0:
            return phi, gphi
        if self.shape == QUADRANGLE:
            a, b0, g = _QUAD_EDGE[i]
            r = xi @ a
            b = b0 + xi @ g
            for j, k in enumerate(range(2, p + 1)):
                lk, dlk = lobatto(k, r)
                phi[:, j] = lk*b
                gphi[:, j, :] = dlk[:, None]*b[:, None]*a + lk[:, None]*g
        else:
            lam = barycentric(xi)
            ia, ib = i, (i + 1) % 3
            la, lb = lam[:, ia], lam[:, ib]
            ga, gb = _TRI_GRAD_LAMBDA[ia], _TRI_GRAD_LAMBDA[ib]
            r = lb - la
            w = la*lb
            gw = lb[:, None]*ga + la[:, None]*gb
            for j, k in enumerate(range(2, p + 1)):
                kv, dkv = kernel(k, r)
                phi[:, j] = w*kv
                gphi[:, j, :] = gw*kv[:, None] + (w*dkv)[:, None]*(gb - ga)
        return phi, gphi

    def bubble_basis(self, order: Order, xi: TensorLike):
        NP = xi.shape[0]
        nb = number_of_bubbles(self.shape, order)
        phi = np.zeros((NP, nb), dtype=xi.dtype)
        gphi = np.zeros((NP, nb, 2), dtype=xi.dtype)
        if nb == 0:
            return phi, gphi
        if self.shape == QUADRANGLE:
            x = xi[:, 0]
            y = xi[:, 1]
            j = 0
            for m in range(2, order[0] + 1):
                lx, dlx = lobatto(m, x)
                for n in range(2, order[1] + 1):
                    ly, dly = lobatto(n, y)
                    phi[:, j] = lx*ly
                    gphi[:, j, 0] = dlx*ly
                    gphi[:, j, 1] = lx*dly
                    j += 1
        else:
            lam = barycentric(xi)
            b = lam[:, 0]*lam[:, 1]*lam[:, 2]
            gb = (lam[:, 1]*lam[:, 2])[:, None]*_TRI_GRAD_LAMBDA[0] \
                + (lam[:, 0]*lam[:, 2])[:, None]*_TRI_GRAD_LAMBDA[1] \
                + (lam[:, 0]*lam[:, 1])[:, None]*_TRI_GRAD_LAMBDA[2]
            s = lam[:, 1] - lam[:, 0]
            gs = _TRI_GRAD_LAMBDA[1] - _TRI_GRAD_LAMBDA[0]
            t = xi[:, 1]
            gt = np.array([0.0, 1.0])
            j = 0
            for deg in range(order[0] - 2):
                for m in range(deg + 1):
                    ps, dps = legendre(m, s)
                    pt, dpt = legendre(deg - m, t)
                    q = ps*pt
                    gq = (dps*pt)[:, None]*gs + (ps*dpt)[:, None]*gt
                    phi[:, j] = b*q
                    gphi[:, j, :] = gb*q[:, None] + b[:, None]*gq
                    j += 1
        return phi, gphi

    def basis(self, xi: TensorLike, edge_orders: Sequence[int], order: Order,
              signs: Optional[TensorLike]=None):
        """The complete local basis at reference points.

        Parameters:
            xi (NP, 2): reference points.
            edge_orders: order of every local edge.
            order: bubble order (ph, pv); triangles use ph.
            signs: optional (ldof, ) factors applied to the functions,
                used to align edge functions with the global edge orientation.

        Returns:
            phi (NP, ldof), gphi (NP, ldof, 2) with gradients in the
            reference coordinates.
        """
        xi = np.asarray(xi, dtype=np.float64)
        values = [self.vertex_basis(xi)]
        for i, p in enumerate(edge_orders):
            values.append(self.edge_basis(i, p, xi))
        values.append(self.bubble_basis(order, xi))
        phi = np.concatenate([v[0] for v in values], axis=1)
        gphi = np.concatenate([v[1] for v in values], axis=1)
        if signs is not None:
            phi = phi*signs
            gphi = gphi*signs[:, None]
        return phi, gphi


SHAPESETS = {TRIANGLE: H1Shapeset(TRIANGLE), QUADRANGLE: H1Shapeset(QUADRANGLE)}


def quadrature(shape: int, order: int):
    if shape == TRIANGLE:
        return TriangleQuadrature(order)
    return QuadrangleQuadrature(order)


class PrecalcShapeset():
    """Basis functions of the active element of a space, evaluated on the
    current sub-element.

    Values at the points of the standard quadrature rules are cached per
    (local basis, path index, quadrature order), so that a path recorded
    during one traversal returns the same tables when it is replayed.
    """
    def __init__(self, space):
        self.space = space
        self.element = None
        self.trf = TransformStack()
        self._cache = {}

    def set_active_element(self, e: int):
        self.element = e
        self.local = self.space.local_basis(e)
        self.trf.set_shape(self.local.shape)
        self.trf.reset()

    def get_active_element(self) -> Optional[int]:
        return self.element

    def push_transform(self, son: int):
        self.trf.push(son)

    def pop_transform(self):
        self.trf.pop()

    def set_transform(self, idx: int):
        self.trf.set_transform(idx)

    def get_transform(self) -> int:
        return self.trf.get_transform()

    def reset_transform(self):
        self.trf.reset()

    def get_fn_order(self) -> int:
        return max(max(self.local.order), max(self.local.edge_orders))

    def eval(self, xi: TensorLike):
        """Basis values and reference gradients (with respect to the active
        element's coordinates) at sub-element points."""
        local = self.local
        shapeset = SHAPESETS[local.shape]
        return shapeset.basis(self.trf.apply(xi), local.edge_orders, local.order, local.signs)

    def get_quad_values(self, qorder: int):
        local = self.local
        key = (local.key, self.trf.get_transform(), qorder)
        val = self._cache.get(key)
        if val is None:
            qf = quadrature(local.shape, qorder)
            xi, ws = qf.get_quadrature_points_and_weights()
            phi, gphi = self.eval(xi)
            val = (xi, ws, phi, gphi)
            self._cache[key] = val
        return val
