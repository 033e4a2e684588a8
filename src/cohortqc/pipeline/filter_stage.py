"""Tag-driven row removal.

The filter is the only place cells leave a cohort. It normalizes the tag
column (optionally through a label map, e.g. singlet/doublet -> keep/discard),
drops every cell whose tag is not the keep value, and checks that nothing was
lost silently.
"""

import logging
from dataclasses import dataclass
from typing import Hashable, Mapping, Optional, Tuple

from cohortqc.contracts import (
    ContractViolation,
    MissingColumn,
    assert_filter_conserves,
    require,
)
from cohortqc.core.cell_table import CellTable, KEEP

__all__ = ['FilterOutcome', 'FilterStage']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterOutcome:
    """Result of one filter application."""
    table: CellTable
    removed_ids: Tuple[Hashable, ...]
    before_count: int
    after_count: int


class FilterStage:
    """Removes cells whose tag differs from the keep value."""

    @staticmethod
    def apply(table: CellTable, tag_column_name: str, keep_value: str = KEEP,
              label_map: Optional[Mapping[str, str]] = None) -> FilterOutcome:
        """Filter ``table`` on ``tag_column_name``.

        Parameters
        ----------
        table : CellTable
            Input table; never mutated.
        tag_column_name : str
            Column holding per-cell labels.
        keep_value : str
            Label (after mapping) that keeps a cell.
        label_map : mapping, optional
            Raw label -> "keep"/"discard". Every label present in the column
            must be mapped.

        Returns
        -------
        FilterOutcome

        Raises
        ------
        MissingColumn
            If the tag column does not exist.
        ContractViolation
            If a label is not covered by ``label_map`` or the row accounting
            does not add up.
        """
        require(
            table.has_column(tag_column_name),
            f"Cohort '{table.cohort}': tag column '{tag_column_name}' not found",
            MissingColumn,
        )

        working = table
        if label_map:
            raw = table.column(tag_column_name)
            unmapped = sorted(set(raw.dropna().astype(str)) - set(label_map))
            if unmapped or raw.isna().any():
                raise ContractViolation(
                    f"Cohort '{table.cohort}': labels {unmapped or ['<missing>']} in "
                    f"'{tag_column_name}' are not covered by the label map"
                )
            normalized = raw.astype(str).map(dict(label_map))
            # map onto a scratch column so the original labels survive
            scratch = f"__{tag_column_name}_normalized"
            working = table.add_column(scratch, normalized)
            new_table, removed = working.filter_by_tag(scratch, keep_value)
            new_table = CellTable.from_frame(new_table.cohort, new_table.to_frame().drop(columns=[scratch]))
        else:
            new_table, removed = table.filter_by_tag(tag_column_name, keep_value)

        assert_filter_conserves(table, new_table, removed)

        outcome = FilterOutcome(
            table=new_table,
            removed_ids=tuple(removed),
            before_count=table.row_count(),
            after_count=new_table.row_count(),
        )
        logger.debug("%s: filter on '%s' kept %d / %d", table.cohort, tag_column_name,
                     outcome.after_count, outcome.before_count)
        return outcome

