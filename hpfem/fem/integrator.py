from typing import Optional, Union, Callable

import numpy as np

from ..typing import TensorLike, Number


def coef_values(coef, x: TensorLike, space=None, e: Optional[int]=None, xi=None):
    """
    @brief Evaluate a coefficient at the quadrature points of element `e`

    @note `coef` may be a number, an array of point values, a cartesian
    callable, or a `Solution` on a coarser copy of the mesh of `space`
    """
    if coef is None:
        return None
    if hasattr(coef, 'set_active_descendant'):
        coef.set_active_descendant(space.mesh, e)
        return coef.value(xi)
    if callable(coef):
        if getattr(coef, 'coordtype', 'cartesian') == 'barycentric':
            raise ValueError("coefficients on hp meshes must be given in cartesian coordinates")
        return coef(x)
    if np.isscalar(coef) or isinstance(coef, np.ndarray):
        return coef
    raise ValueError(f"unsupported coefficient type {type(coef)}")


class ScalarDiffusionIntegrator:
    """
    @note (c \\grad u, \\grad v)
    """
    def __init__(self, c: Union[Number, Callable, None]=None, q: Optional[int]=None):
        self.coef = c
        self.q = q

    def assembly_cell_matrix(self, space, e, refmap, pss):
        q = self.q if self.q is not None else 2*pss.get_fn_order() + refmap.get_inv_ref_order()
        xi, ws, phi, gphi = pss.get_quad_values(q)
        x, detJ, invJ = refmap.geometry(xi)
        gphi = np.einsum('qla, qab->qlb', gphi, invJ)
        c = coef_values(self.coef, x, space, e, xi)
        w = ws*detJ
        if c is not None:
            w = w*c
        return np.einsum('q, qim, qjm->ij', w, gphi, gphi, optimize=True)


class ScalarMassIntegrator:
    """
    @note (c u, v)
    """
    def __init__(self, c: Union[Number, Callable, None]=None, q: Optional[int]=None):
        self.coef = c
        self.q = q

    def assembly_cell_matrix(self, space, e, refmap, pss):
        q = self.q if self.q is not None else 2*pss.get_fn_order() + refmap.get_inv_ref_order()
        xi, ws, phi, gphi = pss.get_quad_values(q)
        x, detJ, _ = refmap.geometry(xi)
        c = coef_values(self.coef, x, space, e, xi)
        w = ws*detJ
        if c is not None:
            w = w*c
        return np.einsum('q, qi, qj->ij', w, phi, phi, optimize=True)


class ScalarSourceIntegrator:
    """
    @note (f, v)
    """
    def __init__(self, f, q: Optional[int]=None):
        self.f = f
        self.q = q

    def assembly_cell_vector(self, space, e, refmap, pss):
        if self.q is not None:
            q = self.q
        else:
            q = 2*pss.get_fn_order() + 2 + refmap.get_inv_ref_order()
        xi, ws, phi, _ = pss.get_quad_values(q)
        x, detJ, _ = refmap.geometry(xi)
        val = coef_values(self.f, x, space, e, xi)
        if np.isscalar(val):
            val = np.full(ws.shape, val, dtype=np.float64)
        return np.einsum('q, q, qi->i', ws*detJ, val, phi, optimize=True)
