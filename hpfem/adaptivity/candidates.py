"""
Refinement candidates of an element and the projection-based selector that
ranks them.

A candidate is a tagged variant: its kind (p, h or hp), the split it applies
(None for pure p-refinement) and the orders of the resulting sons. The
selector projects the reference solution onto each candidate's local space
and scores the error reduction against the number of DOFs added.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Tuple

import numpy as np

from ..typing import TensorLike, Order
from ..mesh.transform import TransformStack, encode_path, son_table, TRIANGLE
from ..mesh.hp_mesh import SplitMode, SPLIT_SONS
from ..mesh.refmap import reference_map
from ..functionspace.shapeset import SHAPESETS, quadrature


class RefinementKind(Enum):
    P = 'p'
    H = 'h'
    HP = 'hp'


class CandList(Enum):
    P_ISO = 'p_iso'
    P_ANISO = 'p_aniso'
    H_ISO = 'h_iso'
    H_ANISO = 'h_aniso'
    HP_ISO = 'hp_iso'
    HP_ANISO_H = 'hp_aniso_h'
    HP_ANISO_P = 'hp_aniso_p'
    HP_ANISO = 'hp_aniso'


# candidate families of every list
_FAMILIES = {
    CandList.P_ISO: {'p_iso'},
    CandList.P_ANISO: {'p_iso', 'p_aniso'},
    CandList.H_ISO: {'h_iso'},
    CandList.H_ANISO: {'h_iso', 'h_aniso'},
    CandList.HP_ISO: {'p_iso', 'h_iso', 'hp_iso'},
    CandList.HP_ANISO_H: {'p_iso', 'h_iso', 'h_aniso', 'hp_iso', 'hp_aniso_h'},
    CandList.HP_ANISO_P: {'p_iso', 'p_aniso', 'h_iso', 'hp_iso', 'hp_aniso_p'},
    CandList.HP_ANISO: {'p_iso', 'p_aniso', 'h_iso', 'h_aniso', 'hp_iso',
                        'hp_aniso_h', 'hp_aniso_p'},
}


@dataclass(frozen=True)
class Candidate:
    kind: RefinementKind
    split: Optional[SplitMode]
    orders: Tuple[Order, ...]

    def sons(self, shape: int) -> Tuple[int, ...]:
        """Son transform indices of the regions of the candidate; a p
        candidate has the single region -1 (the element itself)."""
        if self.split is None:
            return (-1, )
        return SPLIT_SONS[(shape, self.split)]

    def number_of_dofs(self, shape: int) -> int:
        n = 0
        for ph, pv in self.orders:
            if shape == TRIANGLE:
                n += (ph + 1)*(ph + 2)//2
            else:
                n += (ph + 1)*(pv + 1)
        return n


def make_candidates(shape: int, order: Order, cand_list: CandList,
                    max_order: int, iso_only: bool=False) -> List[Candidate]:
    """All candidates of an element of the given shape and order.

    Triangles get isotropic candidates only; `iso_only` removes the
    anisotropic splits and orders for quadrangles as well. Orders are capped
    at `max_order` and candidates that would leave the element unchanged are
    dropped.
    """
    families = _FAMILIES[CandList(cand_list)]
    if shape == TRIANGLE or iso_only:
        families = {f for f in families if 'aniso' not in f}

    ph, pv = order
    if shape == TRIANGLE:
        pv = ph
    cap = lambda p: max(1, min(p, max_order))
    bh = max(1, (ph + 1)//2)
    bv = max(1, (pv + 1)//2)
    P, H, HP = RefinementKind.P, RefinementKind.H, RefinementKind.HP

    cands = []
    if 'p_iso' in families:
        for dp in (1, 2):
            cands.append(Candidate(P, None, ((cap(ph + dp), cap(pv + dp)), )))
    if 'p_aniso' in families:
        cands.append(Candidate(P, None, ((cap(ph + 1), pv), )))
        cands.append(Candidate(P, None, ((ph, cap(pv + 1)), )))
    if 'h_iso' in families:
        cands.append(Candidate(H, SplitMode.ISO, ((ph, pv), )*4))
    if 'h_aniso' in families:
        cands.append(Candidate(H, SplitMode.HORIZONTAL, ((ph, pv), )*2))
        cands.append(Candidate(H, SplitMode.VERTICAL, ((ph, pv), )*2))
    if 'hp_iso' in families:
        for i in (0, 1):
            cands.append(Candidate(HP, SplitMode.ISO, ((cap(bh + i), cap(bv + i)), )*4))
    if 'hp_aniso_p' in families:
        for i, j in ((0, 1), (1, 0)):
            cands.append(Candidate(HP, SplitMode.ISO, ((cap(bh + i), cap(bv + j)), )*4))
    if 'hp_aniso_h' in families:
        # a horizontal cut halves the element in the second direction only
        for i in (0, 1):
            cands.append(Candidate(HP, SplitMode.HORIZONTAL, ((ph, cap(bv + i)), )*2))
            cands.append(Candidate(HP, SplitMode.VERTICAL, ((cap(bh + i), pv), )*2))

    result = []
    for c in cands:
        if c.split is None and c.orders[0] == (ph, pv):
            continue
        if c.kind == HP and all(o == (ph, pv) for o in c.orders):
            continue
        if c not in result:
            result.append(c)
    return result


def default_cand_list(adapt_type: str, iso_only: bool=False,
                      cand_list: Optional[CandList]=None) -> CandList:
    if adapt_type == 'h':
        return CandList.H_ISO if iso_only else CandList.H_ANISO
    if adapt_type == 'p':
        return CandList.P_ISO if iso_only else CandList.P_ANISO
    if cand_list is not None:
        return CandList(cand_list)
    return CandList.HP_ISO if iso_only else CandList.HP_ANISO


class ProjBasedSelector():
    """Choose the refinement of an element by projecting the reference
    solution onto the local spaces of its candidates.

    The reference solution is sampled at the quadrature points of the
    reference elements covering a coarse element; samples are expressed in
    the reference coordinates of the coarse element, where every candidate is
    fitted in the H1 norm. A candidate's score is

        (log err0 - log err) / (dofs - dofs0) ** conv_exp,

    where err0 and dofs0 belong to the unrefined element. Only candidates
    that reduce the error and add DOFs are ranked; when none does, the
    isotropic h-split (or, for p-only lists, the order increase by one) is
    returned so that the element is still refined.
    """
    def __init__(self, ref_solution, cand_list: CandList=CandList.HP_ANISO,
                 conv_exp: float=1.0, max_order: int=10, iso_only: bool=False):
        self.ref = ref_solution.clone()
        self.cand_list = CandList(cand_list)
        self.conv_exp = conv_exp
        self.max_order = max_order
        self.iso_only = iso_only
        self.trf = TransformStack()

    @classmethod
    def from_options(cls, ref_solution, options):
        cand_list = default_cand_list(options['adapt_type'], options['iso_only'],
                                      options['cand_list'])
        return cls(ref_solution, cand_list=cand_list, conv_exp=options['conv_exp'],
                   max_order=options['max_order'], iso_only=options['iso_only'])

    def samples(self, e: int):
        """Reference solution on a coarse element.

        Returns:
            xe (NP, 2): points in the reference coordinates of `e`.
            w (NP, ): weights in the same coordinates.
            u (NP, ), gu (NP, 2): values and gradients with respect to the
                reference coordinates of `e`.
        """
        ref = self.ref
        refmesh = ref.space.mesh
        shape = refmesh.number_of_vertices_of_cell(e)
        vertices = refmesh.node[refmesh.cell_vertices(e)]
        self.trf.set_shape(shape)
        XE, W, U, GU = [], [], [], []
        for f in refmesh.active_descendants(e):
            ref.set_active_element(f)
            self.trf.set_transform(encode_path(refmesh.son_path(e, f)))
            qf = quadrature(shape, 2*ref.get_fn_order() + 2)
            xi, ws = qf.get_quadrature_points_and_weights()
            xe = self.trf.apply(xi)
            u, gx = ref.values(xi)
            _, jac = reference_map(vertices, xe)
            XE.append(xe)
            W.append(ws*abs(self.trf.jacobian()))
            U.append(u)
            GU.append(np.einsum('qi, qij->qj', gx, jac))
        return (np.concatenate(XE), np.concatenate(W),
                np.concatenate(U), np.concatenate(GU))

    @staticmethod
    def _regions(shape: int, sons, xe: TensorLike) -> TensorLike:
        """Index into `sons` of the son region containing each point."""
        region = np.full(xe.shape[0], -1, dtype=np.int_)
        if sons == (-1, ):
            region[:] = 0
            return region
        table = son_table(shape)
        eps = 1e-10
        for k, s in enumerate(sons):
            y = (xe - table[s, 2:4])/table[s, 0:2]
            if shape == TRIANGLE:
                inside = (y[:, 0] >= -1 - eps) & (y[:, 1] >= -1 - eps) \
                    & (y[:, 0] + y[:, 1] <= eps)
            else:
                inside = np.all(np.abs(y) <= 1 + eps, axis=1)
            region[(region == -1) & inside] = k
        return region

    def candidate_error(self, shape: int, cand: Candidate, xe, w, u, gu) -> float:
        """H1 error (in the coarse element's reference coordinates) of the
        best approximation of the samples in the candidate's space."""
        shapeset = SHAPESETS[shape]
        table = son_table(shape)
        sons = cand.sons(shape)
        region = self._regions(shape, sons, xe)
        err = 0.0
        for k, s in enumerate(sons):
            flag = region == k
            if not np.any(flag):
                continue
            if s == -1:
                m, t = np.ones(2), np.zeros(2)
            else:
                m, t = table[s, 0:2], table[s, 2:4]
            y = (xe[flag] - t)/m
            order = cand.orders[k]
            phi, gphi = shapeset.basis(y, shapeset.full_edge_orders(order), order)
            gphi = gphi/m
            sw = np.sqrt(w[flag])
            A = np.concatenate([sw[:, None]*phi, sw[:, None]*gphi[..., 0],
                                sw[:, None]*gphi[..., 1]], axis=0)
            b = np.concatenate([sw*u[flag], sw*gu[flag, 0], sw*gu[flag, 1]])
            c, *_ = np.linalg.lstsq(A, b, rcond=None)
            r = A @ c - b
            err += np.dot(r, r)
        return float(np.sqrt(err))

    def select(self, space, e: int) -> Candidate:
        mesh = space.mesh
        shape = mesh.number_of_vertices_of_cell(e)
        order = space.get_element_order(e)
        if shape == TRIANGLE:
            order = (order[0], order[0])
        xe, w, u, gu = self.samples(e)

        current = Candidate(RefinementKind.P, None, (order, ))
        err0 = max(self.candidate_error(shape, current, xe, w, u, gu), 1e-300)
        dofs0 = current.number_of_dofs(shape)

        best = None
        best_score = -np.inf
        for cand in make_candidates(shape, order, self.cand_list, self.max_order,
                                    self.iso_only):
            dofs = cand.number_of_dofs(shape)
            if dofs <= dofs0:
                continue
            err = self.candidate_error(shape, cand, xe, w, u, gu)
            if err >= err0:
                continue
            score = (np.log(err0) - np.log(max(err, 1e-300)))/(dofs - dofs0)**self.conv_exp
            if score > best_score:
                best, best_score = cand, score

        if best is None:
            best = self.fallback(shape, order)
        return best

    def fallback(self, shape: int, order: Order) -> Candidate:
        families = _FAMILIES[self.cand_list]
        if 'h_iso' in families:
            return Candidate(RefinementKind.H, SplitMode.ISO, (order, )*4)
        p = (min(order[0] + 1, self.max_order), min(order[1] + 1, self.max_order))
        return Candidate(RefinementKind.P, None, (p, ))
