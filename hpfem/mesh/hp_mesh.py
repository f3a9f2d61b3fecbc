from enum import IntEnum
from typing import Optional, Dict, List, Tuple, Union

import numpy as np

from .. import logger
from ..typing import TensorLike, EdgeKey
from ..exceptions import MeshStructureError, ConfigurationError
from .transform import TRIANGLE, QUADRANGLE
from .refmap import reference_map


class SplitMode(IntEnum):
    ISO = 0
    HORIZONTAL = 1
    VERTICAL = 2


# son transform indices created by each split mode
SPLIT_SONS = {
    (TRIANGLE, SplitMode.ISO): (0, 1, 2, 3),
    (QUADRANGLE, SplitMode.ISO): (0, 1, 2, 3),
    (QUADRANGLE, SplitMode.HORIZONTAL): (4, 5),
    (QUADRANGLE, SplitMode.VERTICAL): (6, 7),
}


def edge_key(a: int, b: int) -> EdgeKey:
    a, b = int(a), int(b)
    return (a, b) if a < b else (b, a)


class HPMesh():
    """Hierarchical mesh of triangles and quadrangles with hanging nodes.

    The refinement tree is kept as an arena of arrays indexed by element ids:

        cell (NC, 4)    vertex ids, counterclockwise; column 3 is -1 for
                        triangles
        parent (NC, 2)  parent id and the son transform index in the parent
        child (NC, 4)   son ids, -1 where absent; an element is active when
                        child[e, 0] == -1
        level (NC, )    refinement depth below the root element
        split (NC, )    split mode of an inactive element, -1 when active

    Elements are never removed. Edges are identified by the sorted pair of
    their vertex ids; `midnode` maps an edge that has been cut to its
    midpoint vertex and `edgeparent` maps each half back to the edge it was
    cut from.
    """
    def __init__(self, node: TensorLike, cell: TensorLike,
                 cellmarker: Optional[TensorLike]=None,
                 edgemarker: Optional[Dict[EdgeKey, int]]=None):
        node = np.asarray(node, dtype=np.float64)
        cell = np.asarray(cell, dtype=np.int_)
        if cell.ndim != 2 or cell.shape[1] not in (3, 4):
            raise ValueError(f"cell must have 3 or 4 columns, got shape {cell.shape}")
        if cell.shape[1] == 3:
            cell = np.concatenate((cell, -np.ones((cell.shape[0], 1), dtype=np.int_)), axis=1)

        self.itype = np.int_
        self.ftype = np.float64

        NC = cell.shape[0]
        self._NC = 0
        self._NN = 0
        self._node = np.zeros((0, 2), dtype=self.ftype)
        self._cell = np.zeros((0, 4), dtype=self.itype)
        self._parent = np.zeros((0, 2), dtype=self.itype)
        self._child = np.zeros((0, 4), dtype=self.itype)
        self._level = np.zeros(0, dtype=self.itype)
        self._split = np.zeros(0, dtype=np.int8)
        self._cellmarker = np.zeros(0, dtype=self.itype)

        self._add_nodes(node)
        if cellmarker is None:
            cellmarker = np.zeros(NC, dtype=self.itype)
        self._add_cells(cell, -np.ones((NC, 2), dtype=self.itype),
                        np.zeros(NC, dtype=self.itype), cellmarker)

        self.midnode: Dict[EdgeKey, int] = {}
        self.edgeparent: Dict[EdgeKey, EdgeKey] = {}
        self.edgemarker: Dict[EdgeKey, int] = {}
        self.version = 0

        count: Dict[EdgeKey, int] = {}
        for e in range(NC):
            for a, b in self.local_edges(e):
                key = edge_key(a, b)
                count[key] = count.get(key, 0) + 1
        for key, n in count.items():
            if n > 2:
                raise ValueError(f"edge {key} is shared by {n} cells")
            if n == 1:
                if edgemarker is None:
                    self.edgemarker[key] = 1
                else:
                    self.edgemarker[key] = edgemarker.get(key, 1)

        area = self.entity_measure('cell')
        if np.any(area <= 0):
            bad, = np.nonzero(area <= 0)
            raise ValueError(f"cells {bad.tolist()} are degenerate or not counterclockwise")

    # storage

    def _reserve(self, name: str, n: int):
        arr = getattr(self, name)
        if arr.shape[0] >= n:
            return
        cap = max(n, 2*arr.shape[0], 16)
        new = np.zeros((cap,) + arr.shape[1:], dtype=arr.dtype)
        new[:arr.shape[0]] = arr
        setattr(self, name, new)

    def _add_nodes(self, node: TensorLike) -> TensorLike:
        n = node.shape[0]
        self._reserve('_node', self._NN + n)
        self._node[self._NN:self._NN + n] = node
        idx = np.arange(self._NN, self._NN + n)
        self._NN += n
        return idx

    def _add_cells(self, cell, parent, level, marker) -> TensorLike:
        n = cell.shape[0]
        N = self._NC + n
        for name in ('_cell', '_parent', '_child', '_level', '_split', '_cellmarker'):
            self._reserve(name, N)
        self._cell[self._NC:N] = cell
        self._parent[self._NC:N] = parent
        self._child[self._NC:N] = -1
        self._level[self._NC:N] = level
        self._split[self._NC:N] = -1
        self._cellmarker[self._NC:N] = marker
        idx = np.arange(self._NC, N)
        self._NC = N
        return idx

    node = property(lambda self: self._node[:self._NN])
    cell = property(lambda self: self._cell[:self._NC])
    parent = property(lambda self: self._parent[:self._NC])
    child = property(lambda self: self._child[:self._NC])
    level = property(lambda self: self._level[:self._NC])
    split = property(lambda self: self._split[:self._NC])
    cellmarker = property(lambda self: self._cellmarker[:self._NC])

    # counters and predicates

    def number_of_nodes(self) -> int:
        return self._NN

    def number_of_cells(self) -> int:
        return self._NC

    def number_of_active_cells(self) -> int:
        return int(np.sum(self.is_active_cell()))

    def number_of_vertices_of_cell(self, e: int) -> int:
        return TRIANGLE if self._cell[e, 3] == -1 else QUADRANGLE

    def is_triangle(self, e: int) -> bool:
        return bool(self._cell[e, 3] == -1)

    def is_active_cell(self, idx=None):
        if idx is None:
            return self.child[:, 0] == -1
        else:
            return self.child[idx, 0] == -1

    def is_root_cell(self, idx=None):
        if idx is None:
            return self.parent[:, 0] == -1
        else:
            return self.parent[idx, 0] == -1

    def active_cell_index(self) -> TensorLike:
        idx, = np.nonzero(self.child[:, 0] == -1)
        return idx

    def cell_vertices(self, e: int) -> TensorLike:
        return self._cell[e, :self.number_of_vertices_of_cell(e)]

    def local_edges(self, e: int) -> List[Tuple[int, int]]:
        """Edges of a cell as (start, end) vertex pairs; local edge i runs
        from local vertex i to local vertex i+1."""
        v = self.cell_vertices(e)
        nv = len(v)
        return [(int(v[i]), int(v[(i + 1) % nv])) for i in range(nv)]

    def _check_cell(self, e: int):
        if not 0 <= e < self._NC:
            raise MeshStructureError(f"element {e} does not exist",
                                     context=f"mesh has {self._NC} elements")

    # refinement

    def _get_midnode(self, a: int, b: int) -> int:
        key = edge_key(a, b)
        m = self.midnode.get(key)
        if m is None:
            p = 0.5*(self._node[a] + self._node[b])
            m = int(self._add_nodes(p[None, :])[0])
            self.midnode[key] = m
            for sub in (edge_key(key[0], m), edge_key(m, key[1])):
                self.edgeparent[sub] = key
                if key in self.edgemarker:
                    self.edgemarker[sub] = self.edgemarker[key]
        return m

    def refine(self, e: int, mode: Union[SplitMode, int]=SplitMode.ISO) -> List[int]:
        """Split an active element into sons.

        Parameters:
            e (int): element id.
            mode (SplitMode): ISO for both shapes, HORIZONTAL (sons 4 and 5,
                bottom and top halves) or VERTICAL (sons 6 and 7, left and
                right halves) for quadrangles.

        Returns:
            list[int]: ids of the new sons.
        """
        self._check_cell(e)
        mode = SplitMode(mode)
        shape = self.number_of_vertices_of_cell(e)
        if (shape, mode) not in SPLIT_SONS:
            raise MeshStructureError(
                f"split mode {mode.name} is not supported for triangles",
                context=f"element {e}")
        if self._child[e, 0] != -1:
            raise MeshStructureError(f"element {e} is already refined")

        v = [int(i) for i in self.cell_vertices(e)]
        if shape == TRIANGLE:
            m01 = self._get_midnode(v[0], v[1])
            m12 = self._get_midnode(v[1], v[2])
            m20 = self._get_midnode(v[2], v[0])
            newcell = [
                (v[0], m01, m20, -1),
                (m01, v[1], m12, -1),
                (m20, m12, v[2], -1),
                (m12, m20, m01, -1)]
        elif mode == SplitMode.ISO:
            m01 = self._get_midnode(v[0], v[1])
            m12 = self._get_midnode(v[1], v[2])
            m23 = self._get_midnode(v[2], v[3])
            m30 = self._get_midnode(v[3], v[0])
            center = np.mean(self._node[v], axis=0)
            c = int(self._add_nodes(center[None, :])[0])
            newcell = [
                (v[0], m01, c, m30),
                (m01, v[1], m12, c),
                (c, m12, v[2], m23),
                (m30, c, m23, v[3])]
        elif mode == SplitMode.HORIZONTAL:
            m12 = self._get_midnode(v[1], v[2])
            m30 = self._get_midnode(v[3], v[0])
            newcell = [
                (v[0], v[1], m12, m30),
                (m30, m12, v[2], v[3])]
        else:
            m01 = self._get_midnode(v[0], v[1])
            m23 = self._get_midnode(v[2], v[3])
            newcell = [
                (v[0], m01, m23, v[3]),
                (m01, v[1], v[2], m23)]

        sons = SPLIT_SONS[(shape, mode)]
        n = len(sons)
        parent = np.zeros((n, 2), dtype=self.itype)
        parent[:, 0] = e
        parent[:, 1] = sons
        idx = self._add_cells(
            np.array(newcell, dtype=self.itype), parent,
            np.full(n, self._level[e] + 1, dtype=self.itype),
            np.full(n, self._cellmarker[e], dtype=self.itype))
        self._child[e, :n] = idx
        self._split[e] = mode
        self.version += 1
        return idx.tolist()

    def refine_all(self, mode: Union[SplitMode, int]=SplitMode.ISO):
        """Refine every active element once. Anisotropic modes are applied
        to quadrangles only, triangles are split isotropically."""
        mode = SplitMode(mode)
        for e in self.active_cell_index():
            m = SplitMode.ISO if self.is_triangle(e) else mode
            self.refine(e, m)

    def uniform_refine(self, n: int=1):
        for i in range(n):
            self.refine_all()

    def refine_towards_boundary(self, marker: int, depth: int=1):
        """Refine `depth` times the active elements that have an edge on the
        boundary part with the given marker."""
        for i in range(depth):
            idx = [e for e in self.active_cell_index()
                   if any(self.edgemarker.get(edge_key(a, b)) == marker
                          for a, b in self.local_edges(e))]
            for e in idx:
                self.refine(e)

    # hanging nodes and regularity

    def edge_split_depth(self, key: EdgeKey) -> int:
        """How many times an edge has been cut below itself."""
        m = self.midnode.get(key)
        if m is None:
            return 0
        return 1 + max(self.edge_split_depth(edge_key(key[0], m)),
                       self.edge_split_depth(edge_key(m, key[1])))

    def hanging_level(self, e: int) -> TensorLike:
        """The depth of hanging nodes on each edge of an active element, that
        is the refinement-depth difference to the neighbours along it."""
        return np.array([self.edge_split_depth(edge_key(a, b))
                         for a, b in self.local_edges(e)], dtype=self.itype)

    def constraining_edges(self) -> Dict[EdgeKey, int]:
        """Edges of active elements whose other side is refined, mapped to
        the active element owning them."""
        edges = {}
        for e in self.active_cell_index():
            for a, b in self.local_edges(e):
                key = edge_key(a, b)
                if key in self.midnode:
                    edges[key] = int(e)
        return edges

    def edge_interior_nodes(self, key: EdgeKey) -> List[int]:
        m = self.midnode.get(key)
        if m is None:
            return []
        return ([m] + self.edge_interior_nodes(edge_key(key[0], m))
                + self.edge_interior_nodes(edge_key(m, key[1])))

    def hanging_nodes(self) -> Dict[int, EdgeKey]:
        """Map every hanging vertex to the constraining edge it lies on."""
        nodes = {}
        for key in self.constraining_edges():
            for v in self.edge_interior_nodes(key):
                nodes[v] = key
        return nodes

    def is_hanging_node(self, idx=None):
        isHanging = np.zeros(self._NN, dtype=np.bool_)
        isHanging[list(self.hanging_nodes().keys())] = True
        if idx is None:
            return isHanging
        return isHanging[idx]

    def regularize(self, level: int) -> int:
        """Refine the coarse side of every edge whose hanging nodes are nested
        deeper than `level`, until no such edge is left.

        Parameters:
            level (int): -1 for arbitrary-level hanging nodes (nothing is
                done), otherwise the maximum depth difference, at least 1.

        Returns:
            int: the number of elements refined.
        """
        if level == -1:
            return 0
        if level < 1:
            raise ConfigurationError(
                f"mesh regularity must be -1 or a positive integer, got {level}")

        maxit = self.number_of_cells()
        nrefined = 0
        it = 0
        while True:
            marked = [e for e in self.active_cell_index()
                      if np.max(self.hanging_level(e)) > level]
            if len(marked) == 0:
                break
            it += 1
            if it > maxit:
                raise MeshStructureError(
                    "regularization did not reach a fixed point",
                    context=f"{it} sweeps for {maxit} elements, "
                            f"still irregular: {marked[:10]}")
            for e in marked:
                self.refine(e)
            nrefined += len(marked)
            logger.debug(f"regularize sweep {it}: refined {len(marked)} elements")
        return nrefined

    # topology

    def edge_to_active_cell(self) -> Dict[EdgeKey, List[Tuple[int, int]]]:
        """Map every edge of an active element to the (element, local edge)
        pairs that use it."""
        edge2cell: Dict[EdgeKey, List[Tuple[int, int]]] = {}
        for e in self.active_cell_index():
            for i, (a, b) in enumerate(self.local_edges(e)):
                edge2cell.setdefault(edge_key(a, b), []).append((int(e), i))
        return edge2cell

    def boundary_edges(self) -> Dict[EdgeKey, int]:
        """Boundary edges of active elements with their markers."""
        edges = {}
        for e in self.active_cell_index():
            for a, b in self.local_edges(e):
                key = edge_key(a, b)
                if key in self.edgemarker:
                    edges[key] = self.edgemarker[key]
        return edges

    def son_path(self, ancestor: int, e: int) -> List[int]:
        """Son transform indices leading from `ancestor` down to `e`."""
        path = []
        while e != ancestor:
            if e == -1:
                raise MeshStructureError(
                    f"element is not a descendant of {ancestor}")
            path.append(int(self._parent[e, 1]))
            e = self._parent[e, 0]
        path.reverse()
        return path

    def active_descendants(self, e: int) -> List[int]:
        if self._child[e, 0] == -1:
            return [int(e)]
        cells = []
        for s in self._child[e]:
            if s != -1:
                cells.extend(self.active_descendants(s))
        return cells

    # geometry

    def entity_measure(self, etype='cell', index=None) -> TensorLike:
        if etype not in ('cell', 2):
            raise ValueError(f"entity_measure is only available for cells, got {etype}")
        cell = self.cell
        if index is not None:
            cell = cell[index]
        node = self.node
        isTri = cell[:, 3] == -1
        v = np.where(isTri[:, None], cell[:, [0, 1, 2, 0]], cell)
        p = node[v]
        x = p[..., 0]
        y = p[..., 1]
        return 0.5*np.sum(x*np.roll(y, -1, axis=1) - np.roll(x, -1, axis=1)*y, axis=1)

    def bc_to_point(self, e: int, xi: TensorLike) -> TensorLike:
        """Physical points of reference points of element `e`."""
        x, _ = reference_map(self.node[self.cell_vertices(e)], xi)
        return x

    def inv_ref_order(self, e: int) -> int:
        """Polynomial order of the inverse reference map: 0 for affine
        elements, 2 for general bilinear quadrangles."""
        if self.is_triangle(e):
            return 0
        p = self.node[self.cell_vertices(e)]
        if np.allclose(p[0] + p[2], p[1] + p[3]):
            return 0
        return 2

    def copy(self) -> 'HPMesh':
        """A deep copy keeping element and vertex ids."""
        mesh = HPMesh.__new__(HPMesh)
        mesh.itype = self.itype
        mesh.ftype = self.ftype
        mesh._NC = self._NC
        mesh._NN = self._NN
        for name in ('_node', '_cell', '_parent', '_child', '_level', '_split', '_cellmarker'):
            setattr(mesh, name, getattr(self, name).copy())
        mesh.midnode = dict(self.midnode)
        mesh.edgeparent = dict(self.edgeparent)
        mesh.edgemarker = dict(self.edgemarker)
        mesh.version = self.version
        return mesh

    # constructors

    @classmethod
    def from_box(cls, box=[0, 1, 0, 1], nx: int=1, ny: int=1, meshtype='quad'):
        """Structured mesh of a rectangle. Boundary markers: 1 bottom,
        2 right, 3 top, 4 left."""
        x = np.linspace(box[0], box[1], nx + 1)
        y = np.linspace(box[2], box[3], ny + 1)
        X, Y = np.meshgrid(x, y)
        node = np.stack((X.reshape(-1), Y.reshape(-1)), axis=1)

        idx = np.arange((nx + 1)*(ny + 1)).reshape(ny + 1, nx + 1)
        v0 = idx[:-1, :-1].reshape(-1)
        v1 = idx[:-1, 1:].reshape(-1)
        v2 = idx[1:, 1:].reshape(-1)
        v3 = idx[1:, :-1].reshape(-1)
        if meshtype == 'quad':
            cell = np.stack((v0, v1, v2, v3), axis=1)
        elif meshtype == 'tri':
            cell = np.concatenate((
                np.stack((v0, v1, v2), axis=1),
                np.stack((v0, v2, v3), axis=1)), axis=0)
        else:
            raise ValueError(f"unknown meshtype {meshtype}")

        edgemarker = {}
        for i in range(nx):
            edgemarker[edge_key(idx[0, i], idx[0, i + 1])] = 1
            edgemarker[edge_key(idx[ny, i], idx[ny, i + 1])] = 3
        for j in range(ny):
            edgemarker[edge_key(idx[j, nx], idx[j + 1, nx])] = 2
            edgemarker[edge_key(idx[j, 0], idx[j + 1, 0])] = 4
        return cls(node, cell, edgemarker=edgemarker)

    @classmethod
    def from_one_quadrangle(cls):
        return cls.from_box([0, 1, 0, 1], 1, 1, meshtype='quad')

    @classmethod
    def from_one_triangle(cls):
        node = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        cell = np.array([[0, 1, 2]])
        return cls(node, cell)

    @classmethod
    def from_l_shape(cls, meshtype='quad'):
        """The L-shaped domain (-1, 1)^2 without the quadrant (0, 1)x(-1, 0),
        boundary marker 1 everywhere."""
        node = np.array([
            [-1.0, -1.0], [0.0, -1.0],
            [-1.0, 0.0], [0.0, 0.0], [1.0, 0.0],
            [-1.0, 1.0], [0.0, 1.0], [1.0, 1.0]])
        cell = np.array([[0, 1, 3, 2], [2, 3, 6, 5], [3, 4, 7, 6]])
        if meshtype == 'tri':
            cell = np.concatenate((cell[:, [0, 1, 2]], cell[:, [0, 2, 3]]), axis=0)
        elif meshtype != 'quad':
            raise ValueError(f"unknown meshtype {meshtype}")
        return cls(node, cell)
