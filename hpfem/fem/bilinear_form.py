import numpy as np
from scipy.sparse import csr_matrix

from ..mesh.refmap import RefMap
from ..functionspace.shapeset import PrecalcShapeset


class BilinearForm:
    """
    @brief Sum of domain integrators assembled into a sparse matrix

    @note The element matrices are computed in the local hierarchic basis
    and mapped through the constraint matrices of `space.cell_to_dof`, so
    hanging-node constraints enter the global matrix directly.
    """
    def __init__(self, space):
        self.space = space
        self.dintegrators = []
        self._M = None

    def add_domain_integrator(self, I):
        self.dintegrators.append(I)

    def get_matrix(self, copy=False):
        if copy is False:
            return self._M
        else:
            return self._M.copy()

    def assembly(self):
        space = self.space
        mesh = space.mesh
        gdof = space.number_of_global_dofs()
        refmap = RefMap(mesh)
        pss = PrecalcShapeset(space)

        I = []
        J = []
        V = []
        for e in mesh.active_cell_index():
            refmap.set_active_element(e)
            pss.set_active_element(e)
            dofs, C = space.cell_to_dof(e)
            K = sum(inte.assembly_cell_matrix(space, e, refmap, pss)
                    for inte in self.dintegrators)
            KG = C.T @ K @ C
            n = len(dofs)
            I.append(np.repeat(dofs, n))
            J.append(np.tile(dofs, n))
            V.append(KG.reshape(-1))

        if len(V) == 0:
            self._M = csr_matrix((gdof, gdof), dtype=space.ftype)
        else:
            self._M = csr_matrix((np.concatenate(V),
                                  (np.concatenate(I), np.concatenate(J))),
                                 shape=(gdof, gdof))
        return self._M


class LinearForm:
    """
    @brief Sum of domain integrators assembled into a vector
    """
    def __init__(self, space):
        self.space = space
        self.dintegrators = []
        self._V = None

    def add_domain_integrator(self, I):
        self.dintegrators.append(I)

    def get_vector(self, copy=False):
        if copy is False:
            return self._V
        else:
            return self._V.copy()

    def assembly(self):
        space = self.space
        mesh = space.mesh
        gdof = space.number_of_global_dofs()
        refmap = RefMap(mesh)
        pss = PrecalcShapeset(space)

        F = np.zeros(gdof, dtype=space.ftype)
        for e in mesh.active_cell_index():
            refmap.set_active_element(e)
            pss.set_active_element(e)
            dofs, C = space.cell_to_dof(e)
            b = sum(inte.assembly_cell_vector(space, e, refmap, pss)
                    for inte in self.dintegrators)
            np.add.at(F, dofs, C.T @ b)
        self._V = F
        return F
