#!/usr/bin/env python3
#
import argparse

from hpfem.mesh import HPMesh
from hpfem.adaptivity import adaptive_options, CandList
from hpfem.model import AdaptiveHPFEMModel, LineSingularityData


## argument parsing
parser = argparse.ArgumentParser(description=
        """
        Automatic hp-adaptivity for the Poisson problem with a line
        singularity on (-1, 1)^2.
        """)

parser.add_argument('--alpha',
        default=2.01, type=float,
        help='strength of the singularity, default 2.01.')

parser.add_argument('--p',
        default=2, type=int,
        help='initial polynomial order, default 2.')

parser.add_argument('--init_ref_num',
        default=1, type=int,
        help='initial uniform refinements, default 1.')

parser.add_argument('--meshtype',
        default='quad', type=str,
        help="initial mesh, 'quad' or 'tri', default 'quad'.")

parser.add_argument('--strategy',
        default=0, type=int,
        help='element selection strategy 0, 1 or 2, default 0.')

parser.add_argument('--threshold',
        default=0.3, type=float,
        help='selection threshold, default 0.3.')

parser.add_argument('--regularity',
        default=-1, type=int,
        help='maximum hanging-node level, -1 for arbitrary, default -1.')

parser.add_argument('--adapt_type',
        default='hp', type=str,
        help="'hp', 'h' or 'p', default 'hp'.")

parser.add_argument('--cand_list',
        default='hp_aniso', type=str,
        help='candidate list of hp adaptivity, default hp_aniso.')

parser.add_argument('--iso_only',
        action='store_true',
        help='isotropic refinements only.')

parser.add_argument('--err_stop',
        default=1.0, type=float,
        help='stop when the error estimate in percent is lower, default 1.0.')

parser.add_argument('--ndof_stop',
        default=60000, type=int,
        help='stop when the number of dofs is reached, default 60000.')

parser.add_argument('--max_steps',
        default=None, type=int,
        help='maximum number of adaptivity steps.')

parser.add_argument('--nworkers',
        default=1, type=int,
        help='threads of the error estimator, default 1.')

args = parser.parse_args()

options = adaptive_options(
        strategy=args.strategy,
        threshold=args.threshold,
        regularity=args.regularity,
        iso_only=args.iso_only,
        err_stop=args.err_stop,
        ndof_stop=args.ndof_stop,
        max_steps=args.max_steps,
        adapt_type=args.adapt_type,
        cand_list=CandList(args.cand_list),
        nworkers=args.nworkers,
        init_ref_num=args.init_ref_num)

pde = LineSingularityData(alpha=args.alpha)
model = AdaptiveHPFEMModel(options, pbar_log=True, log_level='INFO')
model.set_pde(pde)
model.set_init_mesh(HPMesh.from_box(pde.domain(), nx=1, ny=1, meshtype=args.meshtype))
model.set_space_degree(args.p)
reason = model.run()

print(f"stopped: {reason}")
print("step  ndof  ndof_ref  err_est(%)  err_exact(%)")
for h in model.history:
    print(f"{h['step']:4d}  {h['ndof']:6d}  {h['ndof_ref']:8d}  "
          f"{h['err_est']:10.4e}  {h['err_exact']:10.4e}")
