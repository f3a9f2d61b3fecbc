import time
from typing import Optional

from tqdm import tqdm

from .computational_model import ComputationalModel
from ..mesh.hp_mesh import HPMesh
from ..functionspace import H1Space
from ..fem import (BilinearForm, LinearForm, ScalarDiffusionIntegrator,
                   ScalarSourceIntegrator, DirichletBC, LinearSystem)
from ..adaptivity.reference import RefSystem
from ..adaptivity.estimator import HPErrorEstimator, h1_error
from ..adaptivity.candidates import ProjBasedSelector
from ..adaptivity.hp_adapt import HPAdapt, adaptive_options, check_options


class AdaptiveHPFEMModel(ComputationalModel):
    """Automatic hp-adaptivity for the Poisson problem -Δu = f.

    Every step solves the coarse problem and the reference problem, estimates
    the error from their difference and, unless a stop condition holds,
    refines the coarse mesh and orders. The steps are recorded in `history`
    and the reason of the stop in `stop_reason` ('converged', 'ndof_limit',
    'max_steps', or 'no_refinement' when the marking selected no element).
    """
    def __init__(self, options: Optional[dict]=None, pbar_log=False, log_level="WARNING"):
        super().__init__(pbar_log=pbar_log, log_level=log_level)
        if options is None:
            options = adaptive_options()
        check_options(options)
        self.options = options
        self.history = []
        self.stop_reason = None
        self.solver = None

    def set_pde(self, pde):
        self.pde = pde

    def set_init_mesh(self, mesh: Optional[HPMesh]=None, meshtype='quad', nx=2, ny=2):
        if mesh is None:
            mesh = HPMesh.from_box(self.pde.domain(), nx=nx, ny=ny, meshtype=meshtype)
        self.mesh = mesh
        if self.options['init_ref_num'] > 0:
            mesh.uniform_refine(self.options['init_ref_num'])
        NN = mesh.number_of_nodes()
        NC = mesh.number_of_active_cells()
        self.logger.info(f"Mesh initialized with {NN} nodes and {NC} active cells.")

    def set_space_degree(self, p: int=1):
        self.space = H1Space(self.mesh, p=p, bc_types=self.pde.bc_types,
                             max_order=self.options['max_order'])
        self.space.assign_dofs()

    def linear_system(self, space) -> LinearSystem:
        bform = BilinearForm(space)
        bform.add_domain_integrator(ScalarDiffusionIntegrator())
        lform = LinearForm(space)
        lform.add_domain_integrator(ScalarSourceIntegrator(self.pde.source))
        dbc = DirichletBC(space, self.pde.dirichlet)
        return LinearSystem(space, bform, lform, dbc, solver=self.solver)

    def solve(self, space):
        return self.linear_system(space).solve()

    def postprocess(self, uh):
        if not hasattr(self.pde, 'gradient'):
            return None
        err, norm = h1_error(uh, self.pde.solution, self.pde.gradient)
        return 100*err/norm if norm > 0 else err

    def run(self) -> str:
        """Run the adaptivity loop until a stop condition holds.

        Returns:
            str: the stop reason.
        """
        opts = self.options
        space = self.space
        estimator = HPErrorEstimator(space, nworkers=opts['nworkers'])
        adapt = HPAdapt(space, estimator)
        self.history = []
        self.stop_reason = None

        pbar = tqdm(total=opts['max_steps'], disable=not self.pbar_log)
        step = 0
        while True:
            step += 1
            t0 = time.perf_counter()
            ndof = space.number_of_global_dofs()
            uh = self.solve(space)
            ref = RefSystem(space, refine_levels=opts['refine_levels'],
                            order_increase=opts['order_increase'])
            uf = self.solve(ref.space)
            err_est = estimator.calc_error(uh, uf, percent=True)
            err_exact = self.postprocess(uh)

            self.history.append({
                'step': step,
                'ndof': ndof,
                'ndof_ref': ref.ndof,
                'err_est': err_est,
                'err_exact': err_exact,
                'cpu_time': time.perf_counter() - t0,
            })
            msg = f"step {step}: ndof {ndof}, ndof_ref {ref.ndof}, err_est {err_est:.4e}%"
            if err_exact is not None:
                msg += f", err_exact {err_exact:.4e}%"
            self.logger.info(msg)
            pbar.update(1)

            if err_est < opts['err_stop']:
                self.stop_reason = 'converged'
            elif ndof >= opts['ndof_stop']:
                self.stop_reason = 'ndof_limit'
            elif opts['max_steps'] is not None and step >= opts['max_steps']:
                self.stop_reason = 'max_steps'
            if self.stop_reason is not None:
                break

            selector = ProjBasedSelector.from_options(uf, opts)
            if adapt.adapt(selector, opts) == 0:
                self.stop_reason = 'no_refinement'
                break

        pbar.close()
        self.uh = uh
        self.uh_ref = uf
        self.logger.info(f"adaptivity stopped after {step} steps: {self.stop_reason}")
        return self.stop_reason
