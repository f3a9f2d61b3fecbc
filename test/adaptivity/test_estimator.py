import numpy as np
import pytest

from hpfem.mesh import HPMesh
from hpfem.functionspace import H1Space, Solution
from hpfem.fem import (BilinearForm, LinearForm, ScalarDiffusionIntegrator,
                       ScalarSourceIntegrator, DirichletBC, LinearSystem)
from hpfem.model import SinSinData
from hpfem.adaptivity import (RefSystem, HPErrorEstimator, ErrorType, h1_error)


def solve(space, pde):
    bform = BilinearForm(space)
    bform.add_domain_integrator(ScalarDiffusionIntegrator())
    lform = LinearForm(space)
    lform.add_domain_integrator(ScalarSourceIntegrator(pde.source))
    return LinearSystem(space, bform, lform, DirichletBC(space, pde.dirichlet)).solve()


def sinsin_pair(p=1, refined=()):
    pde = SinSinData()
    mesh = HPMesh.from_box(pde.domain(), 2, 2)
    for e in refined:
        mesh.refine(e)
    space = H1Space(mesh, p=p, bc_types=pde.bc_types)
    space.assign_dofs()
    uh = solve(space, pde)
    ref = RefSystem(space)
    return space, uh, solve(ref.space, pde)


class TestRefSystem:
    def test_single_quad(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=1)
        space.assign_dofs()
        NC = mesh.number_of_cells()
        version = mesh.version
        ref = RefSystem(space)
        assert ref.ndof == 25
        assert ref.mesh.number_of_active_cells() == 4
        assert mesh.number_of_cells() == NC
        assert mesh.version == version
        assert not space.is_stale()
        assert space.get_element_order(0) == (1, 1)
        assert ref.coarse_space is space

    def test_levels_and_orders(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=2, max_order=3)
        space.assign_dofs()
        ref = RefSystem(space, refine_levels=2, order_increase=2)
        assert ref.mesh.number_of_active_cells() == 16
        # the order increase is capped at the maximum order of the space
        e = ref.mesh.active_cell_index()[0]
        assert ref.space.get_element_order(e) == (3, 3)
        assert ref.ndof == (4*3 + 1)**2

    def test_invalid(self):
        space = H1Space(HPMesh.from_one_quadrangle())
        space.assign_dofs()
        with pytest.raises(ValueError):
            RefSystem(space, refine_levels=-1)

    def test_project_global(self):
        mesh = HPMesh.from_one_quadrangle()
        space = H1Space(mesh, p=1)
        space.assign_dofs()
        ref = RefSystem(space)
        u = lambda p: p[..., 0]**2 + p[..., 1]
        grad_u = lambda p: np.stack((2*p[..., 0], np.ones_like(p[..., 1])), axis=-1)
        uf = ref.project_global(u)
        assert uf.space is ref.space
        err, norm = h1_error(uf, u, grad_u)
        assert err < 1e-10*norm


class TestHPErrorEstimator:
    def test_same_space(self):
        space, uh, _ = sinsin_pair()
        estimator = HPErrorEstimator(space)
        assert estimator.calc_error(uh, uh) == 0.0
        np.testing.assert_array_equal(estimator.element_errors, 0.0)

    @pytest.mark.parametrize("refined", [(), (0, ), (0, 4)])
    def test_projected_coarse_solution(self, refined):
        space, uh, _ = sinsin_pair(p=2, refined=refined)
        rng = np.random.default_rng(0)
        uh = Solution(space, rng.standard_normal(space.number_of_global_dofs()))
        ref = RefSystem(space)
        uf = ref.project_global(uh)
        estimator = HPErrorEstimator(space)
        assert estimator.calc_error(uh, uf) < 1e-6

    def test_element_errors(self):
        space, uh, uf = sinsin_pair(p=1)
        estimator = HPErrorEstimator(space)
        est = estimator.calc_error(uh, uf, percent=False)
        assert est > 0
        assert estimator.calc_error(uh, uf) == pytest.approx(100*est)
        eta = estimator.element_errors
        assert eta.shape == (space.mesh.number_of_cells(), )
        assert np.sum(eta) == pytest.approx(est**2)

        estimator.calc_error(uh, uf, error_type=ErrorType.ABS)
        total = np.sum(estimator.element_norms)
        np.testing.assert_allclose(estimator.element_errors, eta*total)

    def test_sorted_elements(self):
        space, uh, uf = sinsin_pair(p=1, refined=[0])
        estimator = HPErrorEstimator(space)
        estimator.calc_error(uh, uf)
        cells = estimator.sorted_elements()
        assert set(cells.tolist()) == set(space.mesh.active_cell_index().tolist())
        assert np.all(np.diff(estimator.element_errors[cells]) <= 0)

    def test_threads(self):
        space, uh, uf = sinsin_pair(p=2, refined=[0])
        serial = HPErrorEstimator(space)
        threaded = HPErrorEstimator(space, nworkers=3)
        assert threaded.calc_error(uh, uf) == pytest.approx(serial.calc_error(uh, uf))
        np.testing.assert_allclose(threaded.element_errors, serial.element_errors)

    def test_error_form(self):
        space, uh, uf = sinsin_pair(p=1)
        estimator = HPErrorEstimator(space)
        h1 = estimator.calc_error(uh, uf)
        estimator.set_error_form(lambda u, v, x, w: np.sum(w*u[0]*v[0]))
        l2 = estimator.calc_error(uh, uf)
        assert 0 < l2 < h1


class TestExactError:
    def test_sinsin(self):
        pde = SinSinData()
        errors = []
        for n in (2, 4):
            mesh = HPMesh.from_box(pde.domain(), n, n)
            space = H1Space(mesh, p=2, bc_types=pde.bc_types)
            space.assign_dofs()
            uh = solve(space, pde)
            err, norm = h1_error(uh, pde.solution, pde.gradient)
            errors.append(err)
        # second order convergence in H1
        assert errors[0]/errors[1] > 2.5
        assert norm == pytest.approx(np.sqrt(np.pi**2/2 + 0.25))
