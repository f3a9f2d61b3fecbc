from typing import Optional, Union

import numpy as np
from scipy.sparse.linalg import spsolve

from .. import logger
from ..mesh.hp_mesh import SplitMode
from ..fem import (BilinearForm, LinearForm, ScalarMassIntegrator,
                   ScalarSourceIntegrator)
from ..functionspace.solution import Solution


class RefSystem():
    """The reference (fine) discretization of one adaptivity step.

    The coarse mesh is copied and every active element of the copy is
    refined `refine_levels` times; the orders of the copied space are raised
    by `order_increase`, capped at the space's maximum order. The coarse
    mesh and space are left untouched.
    """
    def __init__(self, space, refine_levels: int=1, order_increase: int=1,
                 mode: Union[SplitMode, int]=SplitMode.ISO):
        if refine_levels < 0 or order_increase < 0:
            raise ValueError("refine_levels and order_increase must be non-negative")
        self.coarse_space = space
        self.refine_levels = refine_levels
        self.order_increase = order_increase

        self.mesh = space.mesh.copy()
        for i in range(refine_levels):
            self.mesh.refine_all(mode)
        self.space = space.copy(self.mesh)
        if order_increase > 0:
            self.space.increase_orders(order_increase)
        self.ndof = self.space.assign_dofs()
        logger.debug(f"reference system: {self.mesh.number_of_active_cells()} "
                     f"elements, {self.ndof} dofs")

    def project_global(self, func, q: Optional[int]=None) -> Solution:
        """L2 projection of `func`, a coarse `Solution` or a cartesian
        callable, onto the reference space.

        Essential DOFs are projected like the free ones, so the result is an
        initial iterate rather than a solution satisfying boundary data.
        """
        bform = BilinearForm(self.space)
        bform.add_domain_integrator(ScalarMassIntegrator(q=q))
        lform = LinearForm(self.space)
        if isinstance(func, Solution):
            func = func.clone()
        lform.add_domain_integrator(ScalarSourceIntegrator(func, q=q))
        M = bform.assembly()
        F = lform.assembly()
        x = spsolve(M.tocsc(), F)
        return Solution(self.space, np.asarray(x).reshape(-1))
