import numpy as np
import pytest

from hpfem.mesh import (TransformStack, Transformable, RefMap, HPMesh,
                        encode_path, decode_path, MAX_TRANSFORM_DEPTH,
                        TRIANGLE, QUADRANGLE, TRI_TRF)
from hpfem.exceptions import TransformError

from transform_data import *


class TestTransformStack:
    def test_identity(self):
        trf = TransformStack()
        m, t = trf.ctm
        np.testing.assert_array_equal(m, [1.0, 1.0])
        np.testing.assert_array_equal(t, [0.0, 0.0])
        assert trf.get_transform() == 0
        assert trf.depth == 0
        assert trf.jacobian() == 1.0

    @pytest.mark.parametrize("data", path_data)
    def test_push_pop_round_trip(self, data):
        trf = TransformStack(data["shape"])
        for son in data["sons"]:
            trf.push(son)
        assert trf.depth == len(data["sons"])
        for son in data["sons"]:
            trf.pop()
        m, t = trf.ctm
        np.testing.assert_array_equal(m, [1.0, 1.0])
        np.testing.assert_array_equal(t, [0.0, 0.0])
        assert trf.get_transform() == 0

    @pytest.mark.parametrize("data", path_data)
    def test_set_transform(self, data):
        trf0 = TransformStack(data["shape"])
        for son in data["sons"]:
            trf0.push(son)

        trf1 = TransformStack(data["shape"])
        trf1.push(0)
        trf1.set_transform(encode_path(data["sons"]))

        assert trf1.get_transform() == trf0.get_transform()
        assert trf1.depth == trf0.depth
        np.testing.assert_allclose(trf1.ctm[0], trf0.ctm[0])
        np.testing.assert_allclose(trf1.ctm[1], trf0.ctm[1])

    @pytest.mark.parametrize("data", path_data)
    def test_encode_decode(self, data):
        idx = encode_path(data["sons"])
        assert decode_path(idx) == data["sons"]

    def test_path_index_packing(self):
        trf = TransformStack()
        trf.push(0)
        trf.push(0)
        assert trf.get_transform() == 0o11
        trf.pop()
        assert trf.get_transform() == 0o1
        trf.push(7)
        assert trf.get_transform() == (1 << 3) + 8
        assert decode_path(trf.get_transform()) == [0, 7]
        trf.pop()
        assert trf.get_transform() == 0o1

    @pytest.mark.parametrize("data", son_map_data)
    def test_apply(self, data):
        trf = TransformStack(data["shape"])
        trf.push(data["son"])
        np.testing.assert_allclose(trf.apply(data["points"]), data["image"])

    @pytest.mark.parametrize("data", jacobian_data)
    def test_jacobian(self, data):
        trf = TransformStack(data["shape"])
        jac = 1.0
        for son in data["sons"]:
            before = trf.jacobian()
            trf.push(son)
            single = TransformStack(data["shape"])
            single.push(son)
            assert np.isclose(trf.jacobian(), before*single.jacobian())
            jac *= single.jacobian()
        assert np.isclose(abs(trf.jacobian()), data["jacobian"])
        assert np.isclose(trf.jacobian(), jac)

    def test_tables_are_read_only(self):
        with pytest.raises(ValueError):
            TRI_TRF[0, 0] = 1.0


class TestTransformErrors:
    def test_overflow(self):
        trf = TransformStack()
        for i in range(MAX_TRANSFORM_DEPTH):
            trf.push(1)
        idx = trf.get_transform()
        with pytest.raises(TransformError):
            trf.push(1)
        assert trf.depth == MAX_TRANSFORM_DEPTH
        assert trf.get_transform() == idx

    def test_pop_identity(self):
        trf = TransformStack()
        with pytest.raises(TransformError):
            trf.pop()

    @pytest.mark.parametrize("shape, son", [(TRIANGLE, 4), (TRIANGLE, -1),
                                            (QUADRANGLE, 8)])
    def test_invalid_son(self, shape, son):
        trf = TransformStack(shape)
        trf.push(0)
        with pytest.raises(TransformError):
            trf.push(son)
        assert trf.depth == 1
        assert trf.get_transform() == 1

    def test_invalid_path_index(self):
        with pytest.raises(TransformError):
            decode_path(sum(8**k for k in range(MAX_TRANSFORM_DEPTH + 1)))
        with pytest.raises(TransformError):
            decode_path(-1)
        with pytest.raises(TransformError):
            encode_path([0]*(MAX_TRANSFORM_DEPTH + 1))

    def test_set_transform_leaves_stack(self):
        trf = TransformStack(TRIANGLE)
        trf.push(2)
        with pytest.raises(TransformError):
            trf.set_transform(encode_path([0, 6]))
        assert trf.get_transform() == 3
        assert trf.depth == 1

    def test_error_is_index_error(self):
        assert issubclass(TransformError, IndexError)


class TestRefMap:
    def test_geometry(self):
        mesh = HPMesh.from_one_quadrangle()
        refmap = RefMap(mesh)
        assert isinstance(refmap, Transformable)
        refmap.set_active_element(0)
        xi = np.array([[0.0, 0.0], [-1.0, -1.0]])
        x, detJ, invJ = refmap.geometry(xi)
        np.testing.assert_allclose(x, [[0.5, 0.5], [0.0, 0.0]])
        np.testing.assert_allclose(detJ, 0.25)
        np.testing.assert_allclose(invJ[0], 2*np.eye(2))

        refmap.push_transform(2)
        x, detJ, invJ = refmap.geometry(xi)
        np.testing.assert_allclose(x, [[0.75, 0.75], [0.5, 0.5]])
        np.testing.assert_allclose(detJ, 0.0625)
        np.testing.assert_allclose(refmap.jacobian(xi)[0], 0.25*np.eye(2))
        assert refmap.get_inv_ref_order() == 0
