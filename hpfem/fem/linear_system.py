from typing import Optional, Callable

import numpy as np
from scipy.sparse.linalg import spsolve

from .. import logger
from ..exceptions import SolverError
from ..functionspace.solution import Solution


class LinearSystem():
    """Assemble and solve the discrete problem of one space.

    Parameters:
        space (H1Space): numbered space.
        bform (BilinearForm): the system matrix.
        lform (LinearForm): the right-hand side.
        dirichlet (DirichletBC, optional): essential boundary data; without
            it the essential DOFs, if any, are set to zero.
        solver (callable, optional): `solver(A, b) -> x`, scipy's direct
            solver by default.
    """
    def __init__(self, space, bform, lform, dirichlet=None,
                 solver: Optional[Callable]=None):
        self.space = space
        self.bform = bform
        self.lform = lform
        self.dirichlet = dirichlet
        self.solver = spsolve if solver is None else solver
        self.A = None
        self.F = None

    def assemble(self):
        # raises StaleDofError when the numbering is out of date
        self.space.number_of_global_dofs()
        self.A = self.bform.assembly()
        self.F = self.lform.assembly()
        return self.A, self.F

    def solve(self) -> Solution:
        if self.A is None or self.space.is_stale():
            self.assemble()
        space = self.space
        gdof = space.number_of_global_dofs()
        nfree = space.number_of_free_dofs()

        A = self.A.tocsr()
        if self.dirichlet is not None:
            A, F, uh = self.dirichlet.reduce(A, self.F)
        else:
            uh = np.zeros(gdof, dtype=space.ftype)
            F = self.F[:nfree]
            A = A[:nfree, :nfree]

        if nfree > 0:
            try:
                x = self.solver(A.tocsc(), F)
            except RuntimeError as e:
                raise SolverError(f"linear solve failed: {e}",
                                  context=f"{nfree} unknowns") from e
            x = np.asarray(x).reshape(-1)
            if not np.all(np.isfinite(x)):
                raise SolverError("linear solve returned non-finite values",
                                  context=f"{nfree} unknowns, the matrix is probably singular")
            uh[:nfree] = x
        logger.debug(f"solved a system with {nfree} unknowns ({gdof} dofs)")
        return Solution(space, uh)
