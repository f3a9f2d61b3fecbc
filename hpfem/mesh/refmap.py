from typing import Optional, Tuple

import numpy as np

from ..typing import TensorLike
from .transform import TransformStack, TRIANGLE, QUADRANGLE


def vertex_shape_function(shape: int, xi: TensorLike) -> Tuple[TensorLike, TensorLike]:
    """Linear (triangle) or bilinear (quadrangle) vertex functions on the
    reference element and their reference gradients.

    Returns:
        phi (NP, NV), gphi (NP, NV, 2)
    """
    x = xi[..., 0]
    y = xi[..., 1]
    NP = x.shape[0]
    if shape == TRIANGLE:
        phi = np.stack([-(x + y)/2, (1 + x)/2, (1 + y)/2], axis=-1)
        gphi = np.broadcast_to(
            np.array([[-0.5, -0.5], [0.5, 0.0], [0.0, 0.5]]), (NP, 3, 2)).copy()
    elif shape == QUADRANGLE:
        l0x, l1x = (1 - x)/2, (1 + x)/2
        l0y, l1y = (1 - y)/2, (1 + y)/2
        phi = np.stack([l0x*l0y, l1x*l0y, l1x*l1y, l0x*l1y], axis=-1)
        gphi = np.zeros((NP, 4, 2), dtype=xi.dtype)
        gphi[:, 0, 0] = -l0y/2
        gphi[:, 0, 1] = -l0x/2
        gphi[:, 1, 0] = l0y/2
        gphi[:, 1, 1] = -l1x/2
        gphi[:, 2, 0] = l1y/2
        gphi[:, 2, 1] = l1x/2
        gphi[:, 3, 0] = -l1y/2
        gphi[:, 3, 1] = l0x/2
    else:
        raise ValueError(f"unknown element shape with {shape} vertices")
    return phi, gphi


def reference_map(vertices: TensorLike, xi: TensorLike):
    """Physical points and Jacobian matrices of the map from the reference
    element with the given physical `vertices`.

    Returns:
        x (NP, 2), jac (NP, 2, 2) with jac[q, i, j] = d x_i / d xi_j
    """
    phi, gphi = vertex_shape_function(vertices.shape[0], xi)
    x = phi @ vertices
    jac = np.einsum('qvj, vi->qij', gphi, vertices)
    return x, jac


def inverse_jacobian(jac: TensorLike) -> Tuple[TensorLike, TensorLike]:
    """Determinants and inverses of a stack of 2x2 matrices."""
    det = jac[:, 0, 0]*jac[:, 1, 1] - jac[:, 0, 1]*jac[:, 1, 0]
    invjac = np.empty_like(jac)
    invjac[:, 0, 0] = jac[:, 1, 1]/det
    invjac[:, 0, 1] = -jac[:, 0, 1]/det
    invjac[:, 1, 0] = -jac[:, 1, 0]/det
    invjac[:, 1, 1] = jac[:, 0, 0]/det
    return det, invjac


class RefMap():
    """Reference map of the active element of a mesh.

    Points are given in the reference coordinates of the current
    sub-element; the transform stack maps them into the active element before
    the geometric map is applied, and the returned Jacobians are taken with
    respect to the sub-element coordinates.
    """
    def __init__(self, mesh):
        self.mesh = mesh
        self.element = None
        self.trf = TransformStack()

    def set_active_element(self, e: int):
        self.element = e
        self.trf.set_shape(self.mesh.number_of_vertices_of_cell(e))
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

    def get_inv_ref_order(self) -> int:
        return self.mesh.inv_ref_order(self.element)

    def to_element(self, xi: TensorLike) -> TensorLike:
        """Sub-element reference coordinates to active-element reference
        coordinates."""
        return self.trf.apply(xi)

    def phys(self, xi: TensorLike) -> TensorLike:
        vertices = self.mesh.node[self.mesh.cell_vertices(self.element)]
        x, _ = reference_map(vertices, self.trf.apply(xi))
        return x

    def jacobian(self, xi: TensorLike) -> TensorLike:
        """Jacobian matrices with respect to the sub-element coordinates."""
        vertices = self.mesh.node[self.mesh.cell_vertices(self.element)]
        _, jac = reference_map(vertices, self.trf.apply(xi))
        m, _ = self.trf.ctm
        return jac*m[None, None, :]

    def geometry(self, xi: TensorLike):
        """Physical points, |det J| and inverse Jacobians at sub-element
        points, all with respect to the active element's own reference
        coordinates except `detJ`, which includes the sub-element scaling."""
        vertices = self.mesh.node[self.mesh.cell_vertices(self.element)]
        x, jac = reference_map(vertices, self.trf.apply(xi))
        det, invjac = inverse_jacobian(jac)
        return x, np.abs(det)*abs(self.trf.jacobian()), invjac
