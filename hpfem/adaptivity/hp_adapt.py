from typing import Optional, List

import numpy as np

from .. import logger
from ..typing import TensorLike
from ..exceptions import ConfigurationError
from .candidates import Candidate, CandList, RefinementKind


def adaptive_options(
        strategy=0,
        threshold=0.3,
        regularity=-1,
        iso_only=False,
        max_order=10,
        err_stop=1.0,
        ndof_stop=60000,
        max_steps=None,
        adapt_type='hp',
        cand_list=CandList.HP_ANISO,
        conv_exp=1.0,
        refine_levels=1,
        order_increase=1,
        nworkers=1,
        init_ref_num=0,
        tie_tol=1e-3
        ):
    """Options of the adaptivity loop.

    Parameters:
        strategy (int): element selection, 0 (fraction of the total error),
            1 (fraction of the largest error) or 2 (absolute threshold).
        threshold (float): selection parameter of the strategy.
        regularity (int): maximum hanging-node depth, -1 for arbitrary.
        iso_only (bool): isotropic refinements only.
        max_order (int): maximum polynomial order.
        err_stop (float): stop when the error estimate in percent is lower.
        ndof_stop (int): stop when the coarse space has this many DOFs.
        max_steps (int, optional): maximum number of adaptivity steps.
        adapt_type (str): 'hp', 'h' or 'p'.
        cand_list (CandList): candidates of hp adaptivity.
        conv_exp (float): exponent of the DOF increase in candidate scores.
        refine_levels (int): refinements of the reference mesh.
        order_increase (int): order increase of the reference space.
        nworkers (int): threads of the error estimator.
        init_ref_num (int): uniform refinements before the first step.
        tie_tol (float): relative tolerance under which strategy 0 treats
            element errors as equal, so that symmetric elements are refined
            together.
    """
    options = {
            'strategy': strategy,
            'threshold': threshold,
            'regularity': regularity,
            'iso_only': iso_only,
            'max_order': max_order,
            'err_stop': err_stop,
            'ndof_stop': ndof_stop,
            'max_steps': max_steps,
            'adapt_type': adapt_type,
            'cand_list': cand_list,
            'conv_exp': conv_exp,
            'refine_levels': refine_levels,
            'order_increase': order_increase,
            'nworkers': nworkers,
            'init_ref_num': init_ref_num,
            'tie_tol': tie_tol
        }
    check_options(options)
    return options


def check_options(options):
    if options['strategy'] not in (0, 1, 2):
        raise ConfigurationError(f"unknown adaptivity strategy {options['strategy']}",
                                 context="expected 0, 1 or 2")
    thr = options['threshold']
    if options['strategy'] in (0, 1) and not 0 < thr <= 1:
        raise ConfigurationError(
            f"threshold {thr} of strategy {options['strategy']} must lie in (0, 1]")
    if options['strategy'] == 2 and thr < 0:
        raise ConfigurationError(f"threshold {thr} of strategy 2 must be non-negative")
    reg = options['regularity']
    if reg != -1 and reg < 1:
        raise ConfigurationError(f"mesh regularity must be -1 or a positive integer, got {reg}")
    if options['max_order'] < 1:
        raise ConfigurationError(f"max_order must be positive, got {options['max_order']}")
    if options['adapt_type'] not in ('hp', 'h', 'p'):
        raise ConfigurationError(f"unknown adapt_type {options['adapt_type']}",
                                 context="expected 'hp', 'h' or 'p'")
    try:
        options['cand_list'] = CandList(options['cand_list'])
    except ValueError as e:
        raise ConfigurationError(f"unknown candidate list {options['cand_list']}") from e
    if options['max_steps'] is not None and options['max_steps'] < 1:
        raise ConfigurationError(f"max_steps must be positive, got {options['max_steps']}")
    for key in ('refine_levels', 'order_increase', 'init_ref_num'):
        if options[key] < 0:
            raise ConfigurationError(f"{key} must be non-negative, got {options[key]}")
    if options['refine_levels'] == 0 and options['order_increase'] == 0:
        raise ConfigurationError("the reference space must be richer than the coarse one",
                                 context="refine_levels and order_increase are both 0")
    if options['nworkers'] < 1:
        raise ConfigurationError(f"nworkers must be positive, got {options['nworkers']}")
    if options['tie_tol'] < 0:
        raise ConfigurationError(f"tie_tol must be non-negative, got {options['tie_tol']}")


def mark(eta: TensorLike, strategy: int=0, threshold: float=0.3,
         tol: float=1e-3) -> TensorLike:
    """Select elements for refinement.

    Parameters:
        eta (NC, ): element errors, already restricted to the candidates.
        strategy (int): 0 refines by descending error until the refined error
            reaches sqrt(threshold) times the total, together with the
            elements whose error equals the last refined one up to the
            relative tolerance `tol`; 1 refines the errors larger than
            threshold times the maximum; 2 the errors larger than threshold.

    Returns:
        the indices into `eta` of the selected elements, by descending error.
    """
    eta = np.asarray(eta, dtype=np.float64)
    idx = np.argsort(-eta, kind='stable')
    if len(eta) == 0:
        return idx
    if strategy == 0:
        total = np.sum(eta)
        target = np.sqrt(threshold)*total
        processed = 0.0
        n = 0
        while n < len(idx) and (n == 0 or processed < target):
            processed += eta[idx[n]]
            n += 1
        last = eta[idx[n - 1]]
        while n < len(idx) and abs(eta[idx[n]] - last) <= tol*abs(last):
            n += 1
        return idx[:n]
    elif strategy == 1:
        isMarked = eta[idx] > threshold*np.max(eta)
    elif strategy == 2:
        isMarked = eta[idx] > threshold
    else:
        raise ConfigurationError(f"unknown adaptivity strategy {strategy}")
    return idx[isMarked]


class HPAdapt():
    """Apply the refinements chosen for the elements of a space.

    Parameters:
        space (H1Space): the coarse space; its mesh is refined in place.
        estimator (HPErrorEstimator): holds the element errors of the step.
    """
    def __init__(self, space, estimator):
        self.space = space
        self.mesh = space.mesh
        self.estimator = estimator
        self.history: List[List[Candidate]] = []

    def mark(self, options) -> TensorLike:
        cells = self.mesh.active_cell_index()
        eta = self.estimator.element_errors[cells]
        idx = mark(eta, options['strategy'], options['threshold'],
                   tol=options['tie_tol'])
        return cells[idx]

    def apply(self, e: int, cand: Candidate):
        space = self.space
        if cand.kind == RefinementKind.P:
            space.set_element_order(e, cand.orders[0])
            return [e]
        sons = self.mesh.refine(e, cand.split)
        for s, order in zip(sons, cand.orders):
            space.set_element_order(s, order)
        return sons

    def adapt(self, selector, options) -> int:
        """One refinement step: mark, select a candidate for every marked
        element, refine, regularize the mesh and renumber the DOFs.

        Under the minimum rule, sons of lower order pull the shared edges of
        their neighbours down with them, so a step can end up with fewer
        DOFs than it started with. In that case the orders of the elements
        refined in this step are raised by one until the DOF count grows.

        Returns:
            int: the number of refined elements, 0 when none was marked.
        """
        ndof0 = self.space.number_of_global_dofs()
        marked = self.mark(options)
        chosen = [(int(e), selector.select(self.space, int(e))) for e in marked]
        refined = []
        for e, cand in chosen:
            refined.extend(self.apply(e, cand))
        self.history.append([c for _, c in chosen])
        if len(chosen) == 0:
            logger.info("no element marked for refinement")
            return 0

        nreg = self.mesh.regularize(options['regularity'])
        if nreg > 0:
            logger.debug(f"regularization refined {nreg} elements")
        ndof = self.space.assign_dofs()
        if ndof <= ndof0:
            ndof = self.enforce_growth(refined, ndof0)
        logger.info(f"refined {len(chosen)} elements, {ndof} dofs")
        return len(chosen)

    def enforce_growth(self, refined, ndof0: int) -> int:
        """Raise the orders of the active descendants of `refined` by one
        until the space has more than `ndof0` DOFs.

        Raising every element of a refined patch raises its bubbles and the
        orders of the edges inside it, so the loop ends once the count grows
        or every element has the maximum order.
        """
        space = self.space
        cells = sorted({f for e in refined for f in self.mesh.active_descendants(e)})
        ndof = space.number_of_global_dofs()
        while ndof <= ndof0:
            raised = False
            for e in cells:
                ph, pv = space.get_element_order(e)
                p = (min(ph + 1, space.max_order), min(pv + 1, space.max_order))
                if p != (ph, pv):
                    space.set_element_order(e, p)
                    raised = True
            if not raised:
                logger.warning(f"refinement left {ndof} dofs, not more than {ndof0}, "
                               "with every refined element at the maximum order")
                break
            ndof = space.assign_dofs()
            logger.debug(f"raised the orders of {len(cells)} refined elements, {ndof} dofs")
        return ndof
