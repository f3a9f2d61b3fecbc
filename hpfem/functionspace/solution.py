from typing import Optional, Tuple

import numpy as np

from ..typing import TensorLike
from ..mesh.transform import TransformStack, encode_path
from ..mesh.refmap import reference_map, inverse_jacobian
from .shapeset import SHAPESETS


class Solution():
    """A finite element function: a coefficient vector bound to an
    `H1Space` and, through it, to a mesh.

    Evaluation happens on the active element set by `set_active_element`,
    restricted to the sub-element selected with the transform methods. Every
    solution owns its transform stack; `clone` gives an independent
    evaluator of the same function.
    """
    def __init__(self, space, coef: Optional[TensorLike]=None):
        self.space = space
        self.mesh = space.mesh
        if coef is None:
            coef = np.zeros(space.number_of_global_dofs(), dtype=space.ftype)
        self.coef = np.asarray(coef, dtype=space.ftype)
        self.trf = TransformStack()
        self.element = None

    def __len__(self):
        return self.coef.shape[0]

    def clone(self) -> 'Solution':
        return Solution(self.space, self.coef)

    def set_active_element(self, e: int):
        dofs, C = self.space.cell_to_dof(e)
        self.element = e
        self.local = self.space.local_basis(e)
        self.lcoef = C @ self.coef[dofs]
        self.vertices = self.mesh.node[self.mesh.cell_vertices(e)]
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

    def set_active_descendant(self, mesh, f: int) -> int:
        """Make the element of this solution's mesh that contains element `f`
        of `mesh` active and descend to `f` on it.

        `mesh` has to be a refined copy of this solution's mesh (so that
        the element ids below the copy point agree).

        Returns:
            int: the active element of this solution.
        """
        own = self.mesh
        c = f
        while c >= own.number_of_cells() or not own.is_active_cell(c):
            c = int(mesh.parent[c, 0])
        self.set_active_element(c)
        self.set_transform(encode_path(mesh.son_path(c, f)))
        return c

    def get_fn_order(self) -> int:
        return max(max(self.local.order), max(self.local.edge_orders))

    def value(self, xi: TensorLike) -> TensorLike:
        phi, _ = SHAPESETS[self.local.shape].basis(
            self.trf.apply(xi), self.local.edge_orders, self.local.order,
            self.local.signs)
        return phi @ self.lcoef

    __call__ = value

    def values(self, xi: TensorLike) -> Tuple[TensorLike, TensorLike]:
        """Values (NP, ) and physical gradients (NP, 2) at sub-element
        reference points."""
        xe = self.trf.apply(xi)
        phi, gphi = SHAPESETS[self.local.shape].basis(
            xe, self.local.edge_orders, self.local.order, self.local.signs)
        _, jac = reference_map(self.vertices, xe)
        _, invjac = inverse_jacobian(jac)
        gref = np.einsum('qlj, l->qj', gphi, self.lcoef)
        return phi @ self.lcoef, np.einsum('qa, qab->qb', gref, invjac)

    def grad_value(self, xi: TensorLike) -> TensorLike:
        return self.values(xi)[1]
