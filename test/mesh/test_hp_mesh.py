import numpy as np
import pytest

from hpfem.mesh import HPMesh, SplitMode, edge_key
from hpfem.exceptions import MeshStructureError, ConfigurationError

from hp_mesh_data import *


def check_regularity(mesh, level):
    for e in mesh.active_cell_index():
        assert np.max(mesh.hanging_level(e)) <= level


class TestHPMeshInterfaces:
    @pytest.mark.parametrize("meshdata", box_data)
    def test_from_box(self, meshdata):
        mesh = HPMesh.from_box(meshdata["box"], meshdata["nx"], meshdata["ny"],
                               meshtype=meshdata["meshtype"])
        assert mesh.number_of_nodes() == meshdata["NN"]
        assert mesh.number_of_cells() == meshdata["NC"]
        np.testing.assert_allclose(mesh.entity_measure('cell'), meshdata["area"])
        for key, marker in meshdata["markers"].items():
            assert mesh.edgemarker[key] == marker
        assert np.all(mesh.is_root_cell())
        assert np.all(mesh.is_active_cell())

    def test_invalid_cells(self):
        node = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
        with pytest.raises(ValueError):
            HPMesh(node, np.array([[0, 3, 2, 1]]))
        with pytest.raises(ValueError):
            HPMesh(node, np.array([[0, 1]]))

    @pytest.mark.parametrize("data", refine_data)
    def test_refine(self, data):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        version = mesh.version
        sons = mesh.refine(0, data["mode"])
        assert sons == data["sons"]
        assert mesh.version > version
        assert mesh.number_of_nodes() == data["NN"]
        np.testing.assert_array_equal(mesh.cell[sons], data["son_cells"])
        assert not mesh.is_active_cell(0)
        assert mesh.split[0] == data["mode"]
        np.testing.assert_array_equal(mesh.parent[sons, 0], 0)
        np.testing.assert_array_equal(mesh.level[sons], 1)
        np.testing.assert_allclose(np.sum(mesh.entity_measure('cell', index=sons)), 1.0)
        assert mesh.hanging_nodes() == data["hanging"]

    def test_single_element_iso(self):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        assert mesh.number_of_cells() == 5
        assert mesh.number_of_active_cells() == 4
        assert not mesh.is_active_cell(0)
        assert len(mesh.hanging_nodes()) == 0
        assert not np.any(mesh.is_hanging_node())
        assert mesh.active_descendants(0) == [1, 2, 3, 4]

    def test_triangle_refine(self):
        mesh = HPMesh.from_one_triangle()
        sons = mesh.refine(0)
        assert mesh.number_of_nodes() == 6
        np.testing.assert_allclose(mesh.entity_measure('cell', index=sons), 0.125)
        np.testing.assert_array_equal(mesh.cell[sons[3], :3], [4, 5, 3])

    @pytest.mark.parametrize("meshtype, NC", [('quad', 3), ('tri', 6)])
    def test_from_l_shape(self, meshtype, NC):
        mesh = HPMesh.from_l_shape(meshtype=meshtype)
        assert mesh.number_of_nodes() == 8
        assert mesh.number_of_cells() == NC
        np.testing.assert_allclose(np.sum(mesh.entity_measure('cell')), 3.0)
        assert len(mesh.boundary_edges()) == 8
        assert set(mesh.edgemarker.values()) == {1}
        assert edge_key(3, 4) in mesh.edgemarker

    def test_midnodes_are_shared(self):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        mesh.refine(0)
        NN = mesh.number_of_nodes()
        mesh.refine(1)
        # (1, 4) is cut already, the other three edges and the center are new
        assert mesh.number_of_nodes() == NN + 4
        assert len(mesh.hanging_nodes()) == 0

    def test_boundary_markers_inherited(self):
        mesh = HPMesh.from_box([0, 1, 0, 1], 1, 1)
        mesh.refine(0)
        assert mesh.edgemarker[edge_key(0, 4)] == 1
        assert mesh.edgemarker[edge_key(4, 1)] == 1
        assert mesh.edgemarker[edge_key(2, 6)] == 3
        assert len(mesh.boundary_edges()) == 8

    def test_son_path(self):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        sons = mesh.refine(3, SplitMode.VERTICAL)
        assert mesh.son_path(0, sons[1]) == [2, 7]
        assert mesh.son_path(3, 3) == []
        with pytest.raises(MeshStructureError):
            mesh.son_path(1, sons[0])

    def test_copy(self):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        mesh.refine(0)
        other = mesh.copy()
        other.refine(1)
        assert mesh.number_of_cells() == 6
        assert other.number_of_cells() == 10
        assert mesh.is_active_cell(1)
        np.testing.assert_array_equal(other.cell[:6], mesh.cell)

    def test_refine_towards_boundary(self):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        mesh.refine_towards_boundary(2, depth=2)
        assert mesh.number_of_active_cells() == 1 + 2 + 8
        assert mesh.is_active_cell(0)

    def test_inv_ref_order(self):
        node = np.array([[0.0, 0.0], [2.0, 0.0], [1.5, 1.0], [0.0, 1.0]])
        mesh = HPMesh(node, np.array([[0, 1, 2, 3]]))
        assert mesh.inv_ref_order(0) == 2
        assert HPMesh.from_one_quadrangle().inv_ref_order(0) == 0


class TestHPMeshErrors:
    def test_anisotropic_triangle(self):
        mesh = HPMesh.from_one_triangle()
        with pytest.raises(MeshStructureError):
            mesh.refine(0, SplitMode.HORIZONTAL)
        assert mesh.is_active_cell(0)

    def test_refine_inactive(self):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        with pytest.raises(MeshStructureError):
            mesh.refine(0)

    def test_unknown_element(self):
        mesh = HPMesh.from_one_quadrangle()
        with pytest.raises(MeshStructureError):
            mesh.refine(5)


class TestRegularize:
    def make_mesh(self):
        # two levels of hanging nodes on the edge x = 1
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        mesh.refine(0)
        mesh.refine(3)
        return mesh

    def test_hanging_level(self):
        mesh = self.make_mesh()
        np.testing.assert_array_equal(mesh.hanging_level(1), [0, 0, 0, 2])
        assert mesh.edge_split_depth(edge_key(1, 4)) == 2
        # 12 halves (1, 7), 13 and 14 lie on the edges shared with the other sons
        assert set(mesh.hanging_nodes().keys()) == {7, 12, 13, 14}

    def test_arbitrary_level(self):
        mesh = self.make_mesh()
        NC = mesh.number_of_cells()
        assert mesh.regularize(-1) == 0
        assert mesh.number_of_cells() == NC

    @pytest.mark.parametrize("level", [1, 2])
    def test_regularize(self, level):
        mesh = self.make_mesh()
        n = mesh.regularize(level)
        check_regularity(mesh, level)
        if level == 1:
            assert n >= 1
            assert not mesh.is_active_cell(1)
        else:
            assert n == 0

    def test_regularize_cascade(self):
        mesh = HPMesh.from_box([0, 4, 0, 1], 4, 1)
        e = 0
        for i in range(4):
            sons = mesh.refine(e)
            e = sons[1]
        mesh.regularize(1)
        check_regularity(mesh, 1)

    @pytest.mark.parametrize("level", [0, -2])
    def test_invalid_level(self, level):
        mesh = self.make_mesh()
        with pytest.raises(ConfigurationError):
            mesh.regularize(level)
