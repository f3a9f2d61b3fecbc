from concurrent.futures import ThreadPoolExecutor
from enum import IntEnum
from typing import Optional, Callable, Tuple

import numpy as np

from .. import logger
from ..typing import TensorLike, ErrorForm
from ..mesh.refmap import RefMap
from ..functionspace.shapeset import quadrature


class ErrorType(IntEnum):
    ABS = 0
    REL = 1


ELEMENT_ERROR_ABS = ErrorType.ABS
ELEMENT_ERROR_REL = ErrorType.REL


def h1_form(u, v, x: TensorLike, w: TensorLike) -> float:
    """The H1 inner product (grad u, grad v) + (u, v) on one element.

    `u` and `v` are (values, gradients) pairs at the quadrature points `x`,
    `w` the weights including the Jacobian.
    """
    return np.sum(w*(u[0]*v[0] + np.sum(u[1]*v[1], axis=-1)))


class HPErrorEstimator():
    """Element errors of a coarse solution measured against the reference
    solution.

    For every active coarse element, its active descendants in the reference
    mesh are visited; the coarse solution descends to each of them through
    its transform stack, so both solutions are evaluated at the same
    physical points.

    Parameters:
        space (H1Space): the coarse space.
        error_form (callable, optional): `form(u, v, x, w)`, the H1 form by
            default.
        nworkers (int): number of threads for the element loop.
    """
    def __init__(self, space, error_form: Optional[ErrorForm]=None, nworkers: int=1):
        self.space = space
        self.error_form = h1_form if error_form is None else error_form
        self.nworkers = max(1, int(nworkers))
        self.element_errors = None
        self.element_norms = None

    def set_error_form(self, form: ErrorForm):
        self.error_form = form

    def _element_error(self, e: int, coarse, fine, refmap) -> Tuple[float, float]:
        refmesh = fine.space.mesh
        form = self.error_form
        err = 0.0
        norm = 0.0
        for f in refmesh.active_descendants(e):
            refmap.set_active_element(f)
            fine.set_active_element(f)
            coarse.set_active_descendant(refmesh, f)
            q = coarse.get_fn_order() + fine.get_fn_order() + refmap.get_inv_ref_order() + 1
            qf = quadrature(refmesh.number_of_vertices_of_cell(f), q)
            xi, ws = qf.get_quadrature_points_and_weights()
            x, detJ, _ = refmap.geometry(xi)
            w = ws*detJ
            uf = fine.values(xi)
            uc = coarse.values(xi)
            d = (uc[0] - uf[0], uc[1] - uf[1])
            err += abs(form(d, d, x, w))
            norm += abs(form(uf, uf, x, w))
        return err, norm

    def _run(self, cells, coarse, fine):
        coarse = coarse.clone()
        fine = fine.clone()
        refmap = RefMap(fine.space.mesh)
        return [self._element_error(int(e), coarse, fine, refmap) for e in cells]

    def calc_error(self, coarse, fine, percent: bool=True,
                   error_type: ErrorType=ErrorType.REL) -> float:
        """Global relative error sqrt(sum err_e / sum norm_e).

        Element errors are the squared energies of the difference on each
        element; they are stored in `element_errors` (indexed by element id,
        zero for inactive elements), relative to the total reference norm
        when `error_type` is REL.
        """
        mesh = coarse.space.mesh
        cells = mesh.active_cell_index()
        if self.nworkers > 1 and len(cells) > 1:
            chunks = [c for c in np.array_split(cells, self.nworkers) if len(c) > 0]
            with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
                results = list(pool.map(lambda c: self._run(c, coarse, fine), chunks))
            values = [r for chunk in results for r in chunk]
        else:
            values = self._run(cells, coarse, fine)

        NC = mesh.number_of_cells()
        errors = np.zeros(NC, dtype=np.float64)
        norms = np.zeros(NC, dtype=np.float64)
        for e, (err, norm) in zip(cells, values):
            errors[e] = err
            norms[e] = norm
        total_err = np.sum(errors)
        total_norm = np.sum(norms)

        if total_norm > 0:
            est = np.sqrt(total_err/total_norm)
        else:
            est = np.sqrt(total_err)
        if error_type == ErrorType.REL and total_norm > 0:
            errors = errors/total_norm
        self.element_errors = errors
        self.element_norms = norms
        logger.debug(f"error estimate {est:.6e} on {len(cells)} elements")
        return 100*est if percent else est

    def sorted_elements(self) -> TensorLike:
        """Active elements ordered by descending element error."""
        mesh = self.space.mesh
        cells = mesh.active_cell_index()
        cells = cells[cells < len(self.element_errors)]
        idx = np.argsort(-self.element_errors[cells], kind='stable')
        return cells[idx]


def h1_error(uh, u: Callable, grad_u: Callable, q: Optional[int]=None) -> Tuple[float, float]:
    """H1 norm of u - uh and of u for an exact solution given by cartesian
    callables.

    Returns:
        (float, float): the error and the norm of u.
    """
    mesh = uh.space.mesh
    refmap = RefMap(mesh)
    uh = uh.clone()
    err = 0.0
    norm = 0.0
    for e in mesh.active_cell_index():
        refmap.set_active_element(e)
        uh.set_active_element(e)
        qe = q if q is not None else 2*uh.get_fn_order() + 4 + refmap.get_inv_ref_order()
        qf = quadrature(mesh.number_of_vertices_of_cell(e), qe)
        xi, ws = qf.get_quadrature_points_and_weights()
        x, detJ, _ = refmap.geometry(xi)
        w = ws*detJ
        val, gval = uh.values(xi)
        ue = u(x)
        gue = grad_u(x)
        err += h1_form((val - ue, gval - gue), (val - ue, gval - gue), x, w)
        norm += h1_form((ue, gue), (ue, gue), x, w)
    return float(np.sqrt(err)), float(np.sqrt(norm))
