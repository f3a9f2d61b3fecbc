from .transform import (TransformStack, Transformable, encode_path, decode_path,
                        son_table, TRI_TRF, QUAD_TRF, MAX_TRANSFORM_DEPTH,
                        TRIANGLE, QUADRANGLE)
from .refmap import RefMap
from .hp_mesh import HPMesh, SplitMode, edge_key
