"""Filter stage contract.

No silent data loss: every cell present before a filter is either still
present afterwards or listed as removed, never both.
"""

from cohortqc.contracts.base import require


def assert_filter_conserves(before, after, removed_ids) -> None:
    """Enforce ``row_count(after) + len(removed) == row_count(before)``.

    Parameters
    ----------
    before, after : CellTable
        Table before and after the filter.

    removed_ids : sequence
        Cell ids reported as removed.

    Raises
    ------
    ContractViolation
        If counts do not add up or a removed id is still present.
    """
    require(
        after.row_count() + len(removed_ids) == before.row_count(),
        f"Filter contract violated: {after.row_count()} kept + {len(removed_ids)} removed "
        f"!= {before.row_count()} before"
    )
    require(
        not after.cell_ids.isin(list(removed_ids)).any(),
        "Filter contract violated: removed cells are still present"
    )
