"""
H1 conforming hp space on an `HPMesh`.

Global numbering: active elements are visited in ascending id order and, for
each of them, the not yet numbered vertex DOFs, edge DOFs and bubble DOFs are
numbered as they are met. DOFs on essential boundary parts are numbered after
all the free ones.

Edges with hanging nodes on their fine side (constraining edges) keep their
own DOFs; the hanging vertices and the pieces of the edge (constrained
sub-edges) get no DOFs of their own but linear combinations of the DOFs of
the constraining edge and of its end vertices, which may themselves be
hanging.
"""
from enum import IntEnum
from typing import Optional, Callable, Dict, List, Tuple, NamedTuple, Union

import numpy as np

from .. import logger
from ..typing import TensorLike, EdgeKey, Order, DofMap
from ..exceptions import MeshStructureError, StaleDofError
from ..mesh.hp_mesh import HPMesh, edge_key
from ..quadrature import GaussLegendreQuadrature
from .shapeset import (lobatto, number_of_bubbles, number_of_local_dofs,
                       directional_edge_order)


class BCType(IntEnum):
    NATURAL = 0
    ESSENTIAL = 1


class LocalBasis(NamedTuple):
    """What is needed to evaluate the local basis of an active element.

    `flips[i]` is True when local edge i runs from the higher to the lower
    global vertex id; its edge functions of odd degree then change sign, so
    that every element sees the same global edge function.
    """
    shape: int
    edge_orders: Tuple[int, ...]
    order: Order
    flips: Tuple[bool, ...]

    @property
    def key(self):
        return tuple(self)

    @property
    def signs(self) -> TensorLike:
        s = [1.0]*self.shape
        for p, flip in zip(self.edge_orders, self.flips):
            s.extend(-1.0 if flip and k % 2 == 1 else 1.0 for k in range(2, p + 1))
        s.extend([1.0]*number_of_bubbles(self.shape, self.order))
        return np.array(s, dtype=np.float64)

    def number_of_local_dofs(self) -> int:
        return number_of_local_dofs(self.shape, self.edge_orders, self.order)


class H1Space():
    def __init__(self, mesh: HPMesh, p: Union[int, Order]=1,
                 bc_types: Optional[Callable[[int], BCType]]=None,
                 max_order: int=10):
        self.mesh = mesh
        self.bc_types = bc_types
        self.max_order = max_order
        self.ftype = mesh.ftype
        self.itype = mesh.itype

        NC = mesh.number_of_cells()
        self._order = np.full((NC, 2), -1, dtype=self.itype)
        self._order_version = 0
        self._stamp = None
        self.set_uniform_order(p)

    def __str__(self):
        return "Hierarchic H1 hp space on a hierarchical mesh"

    # orders

    def _check_order(self, p) -> Order:
        if isinstance(p, (int, np.integer)):
            p = (int(p), int(p))
        p = (int(p[0]), int(p[1]))
        if min(p) < 1 or max(p) > self.max_order:
            raise ValueError(f"element order {p} is outside [1, {self.max_order}]")
        return p

    def _sync_orders(self):
        NC = self.mesh.number_of_cells()
        n = self._order.shape[0]
        if n < NC:
            new = np.full((NC, 2), -1, dtype=self.itype)
            new[:n] = self._order
            self._order = new

    def set_uniform_order(self, p: Union[int, Order]):
        """Give every active element the order `p`."""
        p = self._check_order(p)
        self._sync_orders()
        for e in self.mesh.active_cell_index():
            self._set(e, p)
        self._order_version += 1

    def _set(self, e, p):
        if self.mesh.is_triangle(e):
            self._order[e] = max(p)
        else:
            self._order[e] = p

    def set_element_order(self, e: int, p: Union[int, Order]):
        p = self._check_order(p)
        self._sync_orders()
        self._set(e, p)
        self._order_version += 1

    def get_element_order(self, e: int) -> Order:
        """Order (ph, pv) of an element; elements created by refinement
        after their ancestor got an order inherit it."""
        self._sync_orders()
        c = e
        while self._order[c, 0] == -1:
            c = self.mesh.parent[c, 0]
            if c == -1:
                raise MeshStructureError(f"element {e} has no order assigned")
        if c != e:
            self._order[e] = self._order[c]
        return (int(self._order[e, 0]), int(self._order[e, 1]))

    @property
    def orders(self) -> TensorLike:
        """Orders of all elements, -1 where neither the element nor one of
        its ancestors has been given one."""
        self._sync_orders()
        for e in self.mesh.active_cell_index():
            self.get_element_order(e)
        return self._order.copy()

    def increase_orders(self, dp: int=1, max_order: Optional[int]=None):
        """Raise the order of every active element by `dp`, capped at
        `max_order` (the space's own maximum by default)."""
        if max_order is None:
            max_order = self.max_order
        for e in self.mesh.active_cell_index():
            ph, pv = self.get_element_order(e)
            self._order[e] = (min(ph + dp, max_order), min(pv + dp, max_order))
        self._order_version += 1

    def directional_order(self, e: int, i: int) -> int:
        return directional_edge_order(self.mesh.number_of_vertices_of_cell(e), i,
                                      self.get_element_order(e))

    def is_essential_marker(self, marker: int) -> bool:
        if self.bc_types is None:
            return False
        return self.bc_types(marker) == BCType.ESSENTIAL

    # numbering

    def _edge_tree(self, K: EdgeKey):
        """Parameters in [-1, 1] along K (from its lower to its higher vertex
        id) of every vertex on K, and the leaves of its midpoint tree."""
        midnode = self.mesh.midnode
        param = {K[0]: -1.0, K[1]: 1.0}
        leaves = []
        stack = [K]
        while stack:
            a, b = stack.pop()
            m = midnode.get((a, b))
            if m is None:
                leaves.append((a, b))
                continue
            param[m] = 0.5*(param[a] + param[b])
            stack.append(edge_key(a, m))
            stack.append(edge_key(m, b))
        leaves.sort()
        return param, leaves

    def assign_dofs(self) -> int:
        """Number the DOFs of the current mesh and orders and build the
        hanging-node constraints.

        Returns:
            int: the number of global DOFs, essential ones included.
        """
        mesh = self.mesh
        self._sync_orders()
        cells = mesh.active_cell_index()
        edge2cell = mesh.edge_to_active_cell()
        constraining = mesh.constraining_edges()

        self._param: Dict[EdgeKey, Dict[int, float]] = {}
        self._subedge: Dict[EdgeKey, EdgeKey] = {}
        subedges: Dict[EdgeKey, List[EdgeKey]] = {}
        for K in constraining:
            param, leaves = self._edge_tree(K)
            self._param[K] = param
            subedges[K] = leaves
            for S in leaves:
                self._subedge[S] = K
        self._hanging = mesh.hanging_nodes()

        # minimum rule
        eorder: Dict[EdgeKey, int] = {}
        for key, owners in edge2cell.items():
            if key in self._subedge:
                continue
            p = min(self.directional_order(e, i) for e, i in owners)
            if key in constraining:
                for S in subedges[key]:
                    for e, i in edge2cell.get(S, []):
                        p = min(p, self.directional_order(e, i))
            eorder[key] = p
        for S, K in self._subedge.items():
            eorder[S] = eorder[K]
        self._eorder = eorder

        boundary = mesh.boundary_edges()
        esse = {key for key, m in boundary.items() if self.is_essential_marker(m)}
        essv = {v for key in esse for v in key}

        entities = []
        seenv = set()
        seene = set()
        self._local: Dict[int, LocalBasis] = {}
        for e in cells:
            e = int(e)
            shape = mesh.number_of_vertices_of_cell(e)
            order = self.get_element_order(e)
            for v in mesh.cell_vertices(e):
                v = int(v)
                if v in self._hanging or v in seenv:
                    continue
                seenv.add(v)
                entities.append(('vertex', v, 1, v in essv))
            eo = []
            flips = []
            for a, b in mesh.local_edges(e):
                key = edge_key(a, b)
                eo.append(eorder[key])
                flips.append(a > b)
                if key in self._subedge or key in seene:
                    continue
                seene.add(key)
                if eorder[key] > 1:
                    entities.append(('edge', key, eorder[key] - 1, key in esse))
            nb = number_of_bubbles(shape, order)
            if nb > 0:
                entities.append(('bubble', e, nb, False))
            self._local[e] = LocalBasis(shape, tuple(eo), order, tuple(flips))

        self._vertex_dof: Dict[int, int] = {}
        self._edge_dof: Dict[EdgeKey, TensorLike] = {}
        self._bubble_dof: Dict[int, TensorLike] = {}
        ndof = 0
        for essential in (False, True):
            if essential:
                self._nfree = ndof
            for kind, idx, n, ess in entities:
                if ess != essential:
                    continue
                if kind == 'vertex':
                    self._vertex_dof[idx] = ndof
                elif kind == 'edge':
                    self._edge_dof[idx] = np.arange(ndof, ndof + n)
                else:
                    self._bubble_dof[idx] = np.arange(ndof, ndof + n)
                ndof += n
        self._ndof = ndof

        self._vmap: Dict[int, DofMap] = {}
        self._resolving = set()
        for v in sorted(self._hanging):
            self._vertex_map(v)
        self._restriction = {}
        for S, K in self._subedge.items():
            p = eorder[K]
            if p > 1:
                param = self._param[K]
                self._restriction[S] = self._restriction_matrix(p, param[S[0]], param[S[1]])
        self._c2d = {}

        self._stamp = (mesh.version, self._order_version)
        logger.debug(f"assign_dofs: {ndof} dofs, {self._nfree} free, "
                     f"{len(self._hanging)} hanging vertices")
        return ndof

    def _vertex_map(self, v: int) -> DofMap:
        vm = self._vmap.get(v)
        if vm is not None:
            return vm
        if v not in self._hanging:
            return {self._vertex_dof[v]: 1.0}
        if v in self._resolving:
            raise MeshStructureError(
                f"cyclic hanging-node constraints through vertex {v}",
                context=f"constraining edge {self._hanging[v]}")
        self._resolving.add(v)
        K = self._hanging[v]
        t = self._param[K][v]
        vm = {}
        for w, c in ((K[0], 0.5*(1 - t)), (K[1], 0.5*(1 + t))):
            for d, cw in self._vertex_map(w).items():
                vm[d] = vm.get(d, 0.0) + c*cw
        for k, d in enumerate(self._edge_dof.get(K, ()), start=2):
            lk, _ = lobatto(k, np.array(t))
            vm[int(d)] = vm.get(int(d), 0.0) + float(lk)
        self._resolving.discard(v)
        self._vmap[v] = vm
        return vm

    @staticmethod
    def _restriction_matrix(p: int, ta: float, tb: float) -> TensorLike:
        """Coefficients R[k, j] of the Lobatto function l_{k+2}(s) of the
        sub-edge [ta, tb] in the restriction of l_{j+2}(t) of the whole edge,
        after subtracting its linear interpolant on the sub-edge."""
        qf = GaussLegendreQuadrature(p + 1)
        s, _ = qf.get_quadrature_points_and_weights()
        t = ta + 0.5*(s + 1)*(tb - ta)
        A = np.stack([lobatto(k, s)[0] for k in range(2, p + 1)], axis=1)
        G = np.zeros_like(A)
        for j, k in enumerate(range(2, p + 1)):
            la, _ = lobatto(k, np.array(ta))
            lb, _ = lobatto(k, np.array(tb))
            G[:, j] = lobatto(k, t)[0] - (la*(1 - s)/2 + lb*(1 + s)/2)
        R, *_ = np.linalg.lstsq(A, G, rcond=None)
        return R

    def is_stale(self) -> bool:
        return self._stamp != (self.mesh.version, self._order_version)

    def _check_numbering(self):
        if self._stamp is None:
            raise StaleDofError("the space has no DOF numbering, call assign_dofs first")
        if self.is_stale():
            raise StaleDofError(
                "the mesh or the element orders changed after assign_dofs",
                context=f"numbered at mesh version {self._stamp[0]}, "
                        f"mesh is at version {self.mesh.version}")

    # queries

    def number_of_global_dofs(self) -> int:
        self._check_numbering()
        return self._ndof

    def number_of_free_dofs(self) -> int:
        self._check_numbering()
        return self._nfree

    def number_of_local_dofs(self, e: int) -> int:
        return self.local_basis(e).number_of_local_dofs()

    def is_essential_dof(self) -> TensorLike:
        self._check_numbering()
        flag = np.zeros(self._ndof, dtype=np.bool_)
        flag[self._nfree:] = True
        return flag

    def local_basis(self, e: int) -> LocalBasis:
        self._check_numbering()
        local = self._local.get(int(e))
        if local is None:
            raise MeshStructureError(f"element {e} is not active")
        return local

    def get_edge_order(self, key: EdgeKey) -> int:
        self._check_numbering()
        return self._eorder[edge_key(*key)]

    def vertex_dof(self, v: int) -> Optional[int]:
        """The DOF of a vertex, None for hanging vertices."""
        self._check_numbering()
        return self._vertex_dof.get(int(v))

    def edge_dofs(self, key: EdgeKey) -> TensorLike:
        """DOFs of an edge ordered by degree, empty for order-one edges and
        constrained sub-edges."""
        self._check_numbering()
        return self._edge_dof.get(edge_key(*key), np.zeros(0, dtype=self.itype))

    def bubble_dofs(self, e: int) -> TensorLike:
        self._check_numbering()
        return self._bubble_dof.get(int(e), np.zeros(0, dtype=self.itype))

    def get_constraints(self, v: int) -> DofMap:
        """Global DOFs and coefficients that define the value at vertex `v`;
        a single coefficient 1 for unconstrained vertices."""
        self._check_numbering()
        return dict(self._vertex_map(int(v)))

    def is_constrained_edge(self, key: EdgeKey) -> bool:
        self._check_numbering()
        return edge_key(*key) in self._subedge

    def cell_to_dof(self, e: int) -> Tuple[TensorLike, TensorLike]:
        """Local-to-global map of an active element.

        Returns:
            dofs (n, ): global DOFs the local basis depends on, ascending.
            C (ldof, n): local function i equals sum_j C[i, j] * global
                function dofs[j] on the element.
        """
        self._check_numbering()
        val = self._c2d.get(int(e))
        if val is not None:
            return val
        mesh = self.mesh
        local = self.local_basis(e)
        rows: List[DofMap] = []
        for v in mesh.cell_vertices(e):
            rows.append(self._vertex_map(int(v)))
        for i, (a, b) in enumerate(mesh.local_edges(e)):
            key = edge_key(a, b)
            p = local.edge_orders[i]
            if key in self._subedge:
                if p > 1:
                    kd = self._edge_dof[self._subedge[key]]
                    R = self._restriction[key]
                    for k in range(p - 1):
                        rows.append({int(kd[j]): R[k, j] for j in range(p - 1)})
            else:
                rows.extend({int(d): 1.0} for d in self._edge_dof.get(key, ()))
        rows.extend({int(d): 1.0} for d in self._bubble_dof.get(int(e), ()))

        dofs = np.array(sorted(set().union(*rows)), dtype=self.itype)
        col = {int(d): j for j, d in enumerate(dofs)}
        C = np.zeros((len(rows), len(dofs)), dtype=self.ftype)
        for i, row in enumerate(rows):
            for d, c in row.items():
                C[i, col[d]] += c
        self._c2d[int(e)] = (dofs, C)
        return dofs, C

    def copy(self, mesh: Optional[HPMesh]=None) -> 'H1Space':
        """A space with the same orders on `mesh`, which must keep the
        element ids of this space's mesh (a copy of it, possibly refined
        further). The copy has to be numbered with `assign_dofs`."""
        if mesh is None:
            mesh = self.mesh
        space = H1Space.__new__(H1Space)
        space.mesh = mesh
        space.bc_types = self.bc_types
        space.max_order = self.max_order
        space.ftype = self.ftype
        space.itype = self.itype
        space._order = self.orders
        space._order_version = 0
        space._stamp = None
        space._sync_orders()
        return space
