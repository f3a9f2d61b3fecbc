from .integrator import ScalarDiffusionIntegrator, ScalarMassIntegrator, ScalarSourceIntegrator
from .bilinear_form import BilinearForm, LinearForm
from .dirichlet_bc import DirichletBC
from .linear_system import LinearSystem
