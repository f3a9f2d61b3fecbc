"""
Sub-element transforms.

An element of the refinement tree is evaluated on the reference domain
(triangle (-1,-1), (1,-1), (-1,1) or the square [-1,1]^2). A son occupies a
part of its parent's reference domain, given by a diagonal affine map

    x_parent = m * x_son + t,

with `m` and `t` 2-vectors. Descending from an active element to one of its
(virtual or real) descendants composes such maps; `TransformStack` keeps the
composed maps of every level together with a packed integer, the path index,
that records which son was chosen on each level (3 bits per level, the son
number biased by one so that 0 means "no descent"). Son 7 carries into the
next level; the digits are read back as a bijective base-8 numeral, so every
non-negative index decodes to exactly one path.
"""
from typing import Protocol, Sequence, List, Tuple, runtime_checkable

import numpy as np

from ..typing import TensorLike
from ..exceptions import TransformError


MAX_TRANSFORM_DEPTH = 20

TRIANGLE = 3
QUADRANGLE = 4


def _make_table(rows):
    table = np.array(rows, dtype=np.float64)
    table.flags.writeable = False
    return table

# (m0, m1, t0, t1) for every son
TRI_TRF = _make_table([
    ( 0.5,  0.5, -0.5, -0.5),
    ( 0.5,  0.5,  0.5, -0.5),
    ( 0.5,  0.5, -0.5,  0.5),
    (-0.5, -0.5, -0.5, -0.5),
])

QUAD_TRF = _make_table([
    (0.5, 0.5, -0.5, -0.5),
    (0.5, 0.5,  0.5, -0.5),
    (0.5, 0.5,  0.5,  0.5),
    (0.5, 0.5, -0.5,  0.5),
    (1.0, 0.5,  0.0, -0.5),
    (1.0, 0.5,  0.0,  0.5),
    (0.5, 1.0, -0.5,  0.0),
    (0.5, 1.0,  0.5,  0.0),
])


def son_table(shape: int) -> TensorLike:
    """Return the canonical son transforms of a shape (3 or 4 vertices)."""
    if shape == TRIANGLE:
        return TRI_TRF
    elif shape == QUADRANGLE:
        return QUAD_TRF
    else:
        raise ValueError(f"unknown element shape with {shape} vertices")


def encode_path(sons: Sequence[int]) -> int:
    """Pack a sequence of son numbers into a path index."""
    if len(sons) > MAX_TRANSFORM_DEPTH:
        raise TransformError(
            f"path of length {len(sons)} exceeds the maximum transform depth "
            f"{MAX_TRANSFORM_DEPTH}")
    idx = 0
    for son in sons:
        if not 0 <= son < 8:
            raise TransformError(f"son index {son} can not be encoded in 3 bits")
        idx = (idx << 3) + son + 1
    return idx


def decode_path(idx: int) -> List[int]:
    """Unpack a path index into the son numbers, top level first."""
    if idx < 0:
        raise TransformError(f"negative path index {idx}")
    sons = []
    while idx > 0:
        sons.append((idx - 1) & 7)
        idx = (idx - 1) >> 3
    if len(sons) > MAX_TRANSFORM_DEPTH:
        raise TransformError(
            f"path index encodes {len(sons)} levels, more than {MAX_TRANSFORM_DEPTH}")
    sons.reverse()
    return sons


class TransformStack():
    """A bounded stack of composed sub-element transforms.

    Level 0 always holds the identity. The stack does not know which element
    it works on, only its shape, which selects the son table; the evaluator
    owning the stack sets it when its active element changes.
    """
    def __init__(self, shape: int=QUADRANGLE):
        self.stack = np.zeros((MAX_TRANSFORM_DEPTH + 1, 4), dtype=np.float64)
        self.shape = shape
        self.reset()

    def set_shape(self, shape: int):
        son_table(shape)
        self.shape = shape

    def reset(self):
        """Empty the stack and load the identity transform."""
        self.stack[0] = (1.0, 1.0, 0.0, 0.0)
        self.top = 0
        self.sub_idx = 0

    @property
    def depth(self) -> int:
        return self.top

    @property
    def ctm(self) -> Tuple[TensorLike, TensorLike]:
        """The current transform as (m, t)."""
        trf = self.stack[self.top]
        return trf[0:2].copy(), trf[2:4].copy()

    def push(self, son: int):
        """Compose the transform of `son` with the current one.

        All points handed to `apply` afterwards are taken in the reference
        coordinates of that son.
        """
        table = son_table(self.shape)
        if not 0 <= son < len(table):
            raise TransformError(
                f"son index {son} is out of range for a shape with {self.shape} vertices")
        if self.top >= MAX_TRANSFORM_DEPTH:
            raise TransformError(
                f"too deep transform: depth {self.top} is the maximum {MAX_TRANSFORM_DEPTH}",
                context=f"path index {self.sub_idx:#o}")

        old = self.stack[self.top]
        tr = table[son]
        new = self.stack[self.top + 1]
        new[0:2] = old[0:2]*tr[0:2]
        new[2:4] = old[0:2]*tr[2:4] + old[2:4]
        self.top += 1
        self.sub_idx = (self.sub_idx << 3) + son + 1

    def pop(self):
        """Return to the transform before the last `push`."""
        if self.top == 0:
            raise TransformError("can not pop the identity transform")
        self.top -= 1
        self.sub_idx = (self.sub_idx - 1) >> 3

    def set_transform(self, idx: int):
        """Rebuild the stack as if `push` had been called for every son
        encoded in the path index `idx`."""
        sons = decode_path(idx)
        table = son_table(self.shape)
        for son in sons:
            if son >= len(table):
                raise TransformError(
                    f"path index {idx:#o} contains son {son}, invalid for a shape "
                    f"with {self.shape} vertices")
        self.reset()
        for son in sons:
            self.push(son)

    def get_transform(self) -> int:
        return self.sub_idx

    def jacobian(self) -> float:
        m = self.stack[self.top]
        return m[0]*m[1]

    def apply(self, points: TensorLike) -> TensorLike:
        """Map points of the current sub-element into the reference
        coordinates of the active element."""
        m = self.stack[self.top]
        return points*m[0:2] + m[2:4]


@runtime_checkable
class Transformable(Protocol):
    """Capability of an evaluator that can be restricted to sub-elements of
    its active element."""
    def set_active_element(self, e: int) -> None: ...
    def push_transform(self, son: int) -> None: ...
    def pop_transform(self) -> None: ...
    def set_transform(self, idx: int) -> None: ...
    def get_transform(self) -> int: ...
    def reset_transform(self) -> None: ...
