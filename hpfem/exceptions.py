import logging


logger = logging.getLogger(__name__)


class HPFEMError(Exception):
    """
    Base class for all hpfem-specific errors.

    Structural violations, stale DOF numberings and solver failures all derive
    from this class, so a caller can stop an adaptivity run on any of them
    with a single except clause.

    Args:
        message: The error message describing what went wrong
        context: Optional additional context about where the error occurred
    """

    def __init__(self, message: str, context: str | None = None) -> None:
        self.message = message
        self.context = context

        logger.debug("hpfem exception: %s", self._format_message())
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} (Context: {self.context})"
        return self.message


class TransformError(HPFEMError, IndexError):
    """
    Raised when a sub-element transform can not be applied.

    Examples:
        - son index outside the table of the active element's shape
        - pushing beyond the maximum transform depth
        - popping an empty stack
        - decoding a path index deeper than the maximum transform depth
    """

    pass


class MeshStructureError(HPFEMError, ValueError):
    """
    Raised when a mesh operation would violate the refinement tree invariants.

    Examples:
        - anisotropic split requested for a triangle
        - refining an element that already has sons
        - regularization not reaching a fixed point
        - cyclic hanging-node constraints
    """

    pass


class StaleDofError(HPFEMError, RuntimeError):
    """
    Raised when a DOF numbering is used after the mesh or the element orders
    changed without calling `assign_dofs` again.
    """

    pass


class SolverError(HPFEMError, RuntimeError):
    """
    Raised by the linear-solve layer when the system can not be solved
    (singular matrix, non-finite solution, non-convergent iteration).
    """

    pass


class ConfigurationError(HPFEMError, ValueError):
    """
    Raised for invalid adaptivity options.

    Examples:
        - unknown strategy or candidate list
        - regularity level 0 or below -1
        - threshold outside its admissible range
    """

    pass
