import builtins
from typing import Tuple, Union, Callable, Dict

from numpy.typing import NDArray


### Types

TensorLike = NDArray
Number = Union[builtins.int, builtins.float]
EdgeKey = Tuple[int, int]
Order = Tuple[int, int]
DofMap = Dict[int, float]
ErrorForm = Callable[..., TensorLike]
