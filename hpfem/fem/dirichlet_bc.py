import numpy as np
from scipy.sparse import spdiags

from ..quadrature import GaussLegendreQuadrature
from ..functionspace.shapeset import lobatto


class DirichletBC():
    """
    @brief Essential boundary condition u = gD on the boundary parts the
    space marks as essential
    """
    def __init__(self, space, gD):
        self.space = space
        self.gD = gD
        self.bctype = 'Dirichlet'

    def interpolate(self, uh=None):
        """
        @brief Fill the essential DOFs of `uh` with the boundary data

        @note vertex DOFs take the values of gD, edge DOFs the L2 projection
        of gD minus its linear interpolant onto the Lobatto functions of the
        edge
        """
        space = self.space
        mesh = space.mesh
        node = mesh.node
        gdof = space.number_of_global_dofs()
        nfree = space.number_of_free_dofs()
        if uh is None:
            uh = np.zeros(gdof, dtype=space.ftype)

        for key, marker in mesh.boundary_edges().items():
            if not space.is_essential_marker(marker):
                continue
            a, b = key
            ga, gb = self.gD(node[[a, b]])
            for v, g in ((a, ga), (b, gb)):
                d = space.vertex_dof(v)
                if d is not None and d >= nfree:
                    uh[d] = g
            dofs = space.edge_dofs(key)
            if len(dofs) == 0:
                continue
            p = len(dofs) + 1
            qf = GaussLegendreQuadrature(p + 2)
            r, ws = qf.get_quadrature_points_and_weights()
            x = np.einsum('q, i->qi', (1 - r)/2, node[a]) + np.einsum('q, i->qi', (1 + r)/2, node[b])
            res = self.gD(x) - (ga*(1 - r)/2 + gb*(1 + r)/2)
            A = np.stack([lobatto(k, r)[0] for k in range(2, p + 1)], axis=1)
            M = np.einsum('q, qi, qj->ij', ws, A, A)
            F = np.einsum('q, qi, q->i', ws, A, res)
            uh[dofs] = np.linalg.solve(M, F)
        return uh

    def apply(self, A, f, uh=None):
        """
        @brief Replace the essential rows and columns by the identity

        @note `f` is not modified in place
        """
        space = self.space
        uh = self.interpolate(uh)
        isDDof = space.is_essential_dof()
        f = f - A@uh

        bdIdx = np.zeros(A.shape[0], dtype=np.int_)
        bdIdx[isDDof] = 1
        D0 = spdiags(1-bdIdx, 0, A.shape[0], A.shape[0])
        D1 = spdiags(bdIdx, 0, A.shape[0], A.shape[0])
        A = D0@A@D0 + D1

        f[isDDof] = uh[isDDof]
        return A, f

    def reduce(self, A, f, uh=None):
        """
        @brief Eliminate the essential DOFs, which are numbered last

        @return the free block of A, the modified right-hand side and the
        vector holding the boundary values
        """
        nfree = self.space.number_of_free_dofs()
        uh = self.interpolate(uh)
        A = A.tocsr()
        f = f[:nfree] - A[:nfree, nfree:]@uh[nfree:]
        return A[:nfree, :nfree], f, uh
