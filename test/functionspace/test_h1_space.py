import numpy as np
import pytest

from hpfem.mesh import HPMesh, edge_key
from hpfem.functionspace import H1Space, BCType, Solution
from hpfem.functionspace.shapeset import lobatto
from hpfem.exceptions import StaleDofError, MeshStructureError

from h1_space_data import *


def ref_coords(mesh, e, x):
    """Reference coordinates of points in an axis-aligned rectangle whose
    first vertex is its lower left corner."""
    p = mesh.node[mesh.cell_vertices(e)]
    return 2*(x - p[0])/(p[2] - p[0]) - 1


def interface_points(direction, c, r, n=7):
    s = np.linspace(r[0], r[1], n)
    if direction == "x":
        return np.stack([np.full_like(s, c), s], axis=1)
    return np.stack([s, np.full_like(s, c)], axis=1)


def check_continuity(space, pairs, seed=0):
    rng = np.random.default_rng(seed)
    uh = Solution(space, rng.standard_normal(space.number_of_global_dofs()))
    mesh = space.mesh
    for e0, e1, x in pairs:
        uh.set_active_element(e0)
        v0 = uh(ref_coords(mesh, e0, x))
        uh.set_active_element(e1)
        v1 = uh(ref_coords(mesh, e1, x))
        np.testing.assert_allclose(v0, v1, atol=1e-12)


def hanging_mesh():
    mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
    mesh.refine(0)
    return mesh


def chain_mesh():
    mesh = HPMesh.from_box([0, 2, 0, 2], 2, 2)
    mesh.refine(1)
    mesh.refine(4)
    return mesh


class TestH1SpaceInterfaces:
    @pytest.mark.parametrize("data", refined_quad_data)
    def test_refined_quad(self, data):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        space = H1Space(mesh, p=data["p"])
        assert space.assign_dofs() == data["NDof"]
        assert space.number_of_global_dofs() == data["NDof"]
        assert space.number_of_free_dofs() == data["NDof"]
        assert not np.any(space.is_essential_dof())

    @pytest.mark.parametrize("p", [1, 2, 3, 5])
    def test_triangle(self, p):
        space = H1Space(HPMesh.from_one_triangle(), p=p)
        assert space.assign_dofs() == (p + 1)*(p + 2)//2
        assert space.get_element_order(0) == (p, p)

    @pytest.mark.parametrize("data", order_data)
    def test_minimum_rule(self, data):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        space = H1Space(mesh)
        for e, p in data["orders"].items():
            space.set_element_order(e, p)
        assert space.assign_dofs() == data["NDof"]
        p0 = space.directional_order(0, 1)
        p1 = space.directional_order(1, 3)
        assert space.get_edge_order((4, 1)) == min(p0, p1)

    def test_anisotropic_edge_orders(self):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        space = H1Space(mesh, p=(3, 2))
        space.set_element_order(1, 4)
        space.assign_dofs()
        # element 0 is (0, 1, 4, 3); its edge (1, 4) runs in the second direction
        assert space.local_basis(0).edge_orders == (3, 2, 3, 2)
        assert space.local_basis(1).edge_orders == (4, 4, 4, 2)
        assert space.local_basis(0).flips == (False, False, True, True)

    def test_essential_dofs_last(self):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        space = H1Space(mesh, p=1, bc_types=lambda m: BCType.ESSENTIAL)
        assert space.assign_dofs() == 9
        assert space.number_of_free_dofs() == 1
        assert space.vertex_dof(8) == 0
        flag = space.is_essential_dof()
        assert np.sum(flag) == 8
        assert not flag[0]

    def test_essential_marker(self):
        mesh = HPMesh.from_one_quadrangle()
        # only the bottom is essential
        space = H1Space(mesh, p=2,
                        bc_types=lambda m: BCType.ESSENTIAL if m == 1 else BCType.NATURAL)
        assert space.assign_dofs() == 9
        assert space.number_of_free_dofs() == 6
        assert space.edge_dofs((0, 1))[0] == 8
        assert space.vertex_dof(0) == 6
        assert space.vertex_dof(1) == 7

    def test_order_inheritance(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=3)
        sons = mesh.refine(0)
        space.set_element_order(sons[0], 2)
        assert space.get_element_order(sons[0]) == (2, 2)
        assert space.get_element_order(sons[1]) == (3, 3)
        orders = space.orders
        np.testing.assert_array_equal(orders[sons], [[2, 2], [3, 3], [3, 3], [3, 3]])

    def test_increase_orders(self):
        mesh = HPMesh.from_box([0, 2, 0, 1], 2, 1)
        space = H1Space(mesh, p=1, max_order=3)
        space.set_element_order(1, 3)
        space.increase_orders(1)
        assert space.get_element_order(0) == (2, 2)
        assert space.get_element_order(1) == (3, 3)

    @pytest.mark.parametrize("p", [0, 11, (1, 0)])
    def test_invalid_order(self, p):
        space = H1Space(HPMesh.from_one_quadrangle())
        with pytest.raises(ValueError):
            space.set_element_order(0, p)

    def test_copy(self):
        mesh = hanging_mesh()
        space = H1Space(mesh, p=2)
        space.set_element_order(1, 3)
        ndof = space.assign_dofs()
        fine = mesh.copy()
        fine.refine_all()
        other = space.copy(fine)
        other.assign_dofs()
        assert other.get_element_order(fine.child[1, 0]) == (3, 3)
        assert space.number_of_global_dofs() == ndof
        assert not space.is_stale()


class TestHangingNodes:
    def test_constraints_linear(self):
        space = H1Space(hanging_mesh(), p=1)
        assert space.assign_dofs() == 10
        assert space.vertex_dof(7) is None
        cons = space.get_constraints(7)
        assert cons == pytest.approx({space.vertex_dof(1): 0.5, space.vertex_dof(4): 0.5})
        assert space.get_constraints(0) == {space.vertex_dof(0): 1.0}
        assert space.is_constrained_edge((1, 7))
        assert space.is_constrained_edge((7, 4))
        assert not space.is_constrained_edge((1, 4))

    def test_constraints_quadratic(self):
        space = H1Space(hanging_mesh(), p=2)
        space.assign_dofs()
        d, = space.edge_dofs((1, 4))
        cons = space.get_constraints(7)
        assert cons[d] == pytest.approx(lobatto(2, np.array(0.0))[0])
        assert len(space.edge_dofs((1, 7))) == 0

    def test_cell_to_dof(self):
        space = H1Space(hanging_mesh(), p=1)
        space.assign_dofs()
        # element 3 is (6, 1, 7, 10)
        dofs, C = space.cell_to_dof(3)
        d1, d4 = space.vertex_dof(1), space.vertex_dof(4)
        assert set(dofs.tolist()) == {space.vertex_dof(6), d1, d4, space.vertex_dof(10)}
        assert np.all(np.diff(dofs) > 0)
        col = {d: j for j, d in enumerate(dofs.tolist())}
        expected = np.zeros(len(dofs))
        expected[col[d1]] = 0.5
        expected[col[d4]] = 0.5
        np.testing.assert_allclose(C[2], expected)
        np.testing.assert_allclose(np.sum(C, axis=1), 1.0)

    @pytest.mark.parametrize("p", [1, 2, 3, 4])
    def test_continuity(self, p):
        mesh = hanging_mesh()
        space = H1Space(mesh, p=p)
        space.assign_dofs()
        pairs = [(e0, e1, interface_points("x", 1.0, r)) for e0, e1, r in interface_data]
        check_continuity(space, pairs)

    def test_continuity_mixed_orders(self):
        mesh = hanging_mesh()
        space = H1Space(mesh, p=2)
        space.set_element_order(1, 4)
        space.set_element_order(4, (3, 2))
        space.assign_dofs()
        pairs = [(e0, e1, interface_points("x", 1.0, r)) for e0, e1, r in interface_data]
        check_continuity(space, pairs, seed=1)

    def test_chain_constraints(self):
        mesh = chain_mesh()
        assert np.allclose(mesh.node[16], [1.25, 0.5])
        space = H1Space(mesh, p=1)
        space.assign_dofs()
        hanging = mesh.hanging_nodes()
        assert hanging[16] == (12, 13)
        assert hanging[12] == (1, 4)
        cons = space.get_constraints(16)
        expected = {space.vertex_dof(1): 0.25, space.vertex_dof(4): 0.25,
                    space.vertex_dof(13): 0.5}
        assert cons == pytest.approx(expected)

    @pytest.mark.parametrize("p", [1, 2, 3])
    def test_chain_continuity(self, p):
        space = H1Space(chain_mesh(), p=p)
        space.assign_dofs()
        pairs = [(e0, e1, interface_points(d, c, r))
                 for e0, e1, d, c, r in chain_interface_data]
        check_continuity(space, pairs, seed=p)


class TestH1SpaceErrors:
    def test_not_numbered(self):
        space = H1Space(HPMesh.from_one_quadrangle())
        with pytest.raises(StaleDofError):
            space.number_of_global_dofs()

    def test_stale_after_refine(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=2)
        space.assign_dofs()
        mesh.refine(0)
        assert space.is_stale()
        with pytest.raises(StaleDofError):
            space.number_of_global_dofs()
        with pytest.raises(StaleDofError):
            space.cell_to_dof(1)
        space.assign_dofs()
        assert space.number_of_global_dofs() == 25

    def test_stale_after_order_change(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=2)
        space.assign_dofs()
        space.set_element_order(0, 3)
        with pytest.raises(StaleDofError):
            space.local_basis(0)

    def test_stale_error_is_runtime_error(self):
        assert issubclass(StaleDofError, RuntimeError)

    def test_inactive_element(self):
        mesh = HPMesh.from_one_quadrangle()
        mesh.refine(0)
        space = H1Space(mesh)
        space.assign_dofs()
        with pytest.raises(MeshStructureError):
            space.local_basis(0)
