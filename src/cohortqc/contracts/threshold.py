"""Threshold stage contract.

Enforces that a policy result tags every current cell, uses only the two
normalized tag values, and exposes a numeric cutoff for the audit log.
"""

import math

from cohortqc.contracts.base import require
from cohortqc.contracts.failure import ShapeMismatch


def assert_threshold_result(result, table) -> None:
    """Enforce threshold stage contract.

    Parameters
    ----------
    result : ThresholdPolicyResult
        Output of ``policy.derive_cutoff_and_tag``.

    table : CellTable
        Table the policy was applied to.

    Raises
    ------
    ContractViolation
        If tags are misaligned, contain foreign values, or the cutoff is
        not a finite number. A NaN cutoff is accepted only when no cell is
        kept (cohort without finite metric values).
    """
    require(
        result.tags.index.equals(table.cell_ids),
        f"Threshold contract violated: tags of {len(result.tags)} cells do not align "
        f"with {table.row_count()} cells of '{table.cohort}'",
        ShapeMismatch,
    )
    labels = set(result.tags.unique())
    require(
        labels <= {"keep", "discard"},
        f"Threshold contract violated: unexpected tag values {sorted(map(str, labels))}"
    )
    require(
        isinstance(result.cutoff, float),
        f"Threshold contract violated: cutoff {result.cutoff!r} is not a float"
    )
    require(
        math.isfinite(result.cutoff) or not (result.tags == "keep").any(),
        f"Threshold contract violated: cutoff {result.cutoff!r} is not finite "
        f"but cells of '{table.cohort}' are kept"
    )
