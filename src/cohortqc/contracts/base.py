"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for all contracts.
It enforces semantic invariants of the pipeline at stage boundaries.
"""

from typing import Type

from cohortqc.contracts.failure import ContractViolation


def require(condition: bool, message: str,
            error: Type[ContractViolation] = ContractViolation) -> None:
    """Enforce a pipeline contract.

    This is called at stage boundaries to verify the preceding stage
    produced the guaranteed invariants. It is fail-fast: no recovery,
    no fallback, no silence.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ``error`` is raised.

    message : str
        Error message explaining the contract violation (for debugging).

    error : type, optional
        ContractViolation subclass to raise (default: ContractViolation).

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug in pipeline logic.

    Examples
    --------
    >>> require(table.has_column("pct_mito"), "Metric contract: missing 'pct_mito'")
    >>> require(len(values) == n, "Shape contract: length mismatch", ShapeMismatch)
    """
    if not condition:
        raise error(message)
