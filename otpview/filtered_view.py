import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from otpview.errors import ComputationError

logger = logging.getLogger(__name__)

CODE_PLACEHOLDER = "ERROR"


@dataclass(frozen=True)
class FilteredRow:
    index: int  # position in the credential store
    issuer: str
    label: str
    code: str


def matches(record, query: str) -> bool:
    term = query.lower()
    return term in record.issuer.lower() or term in record.label.lower()


class FilteredView:
    """Search-filtered projection of the credential store plus a cursor.

    Rows are cached by ``(query, store generation)``; ``refresh`` only
    recomputes when that key changes or a rebuild is forced (the codes
    themselves change when the rotation window wraps).
    """

    def __init__(self):
        self.rows: List[FilteredRow] = []
        self.selected: Optional[int] = None
        self._key: Optional[Tuple[str, int]] = None

    def rebuild(self, records: Sequence, query: str, code_for: Optional[Callable[[int], str]] = None) -> List[FilteredRow]:
        rows = []
        for index, record in enumerate(records):
            if query and not matches(record, query):
                continue
            rows.append(FilteredRow(index, record.issuer, record.label, self._code(code_for, index)))
        self.rows = rows
        self._clamp_selection()
        return rows

    def refresh(self, store, query: str, force: bool = False) -> bool:
        """Rebuild from ``store`` if the cache key changed or ``force`` is set."""
        key = (query, store.generation)
        if not force and key == self._key:
            return False
        self.rebuild(store.elements(), query, store.current_code)
        self._key = key
        return True

    @staticmethod
    def _code(code_for, index: int) -> str:
        if code_for is None:
            return ""
        try:
            return code_for(index)
        except ComputationError as e:
            logger.debug(f"Code for element {index} unavailable: {e}")
            return CODE_PLACEHOLDER

    def _clamp_selection(self) -> None:
        if not self.rows:
            self.selected = None
        elif self.selected is None:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, len(self.rows) - 1))

    def select_next(self) -> None:
        if self.rows:
            current = -1 if self.selected is None else self.selected
            self.selected = min(len(self.rows) - 1, current + 1)

    def select_previous(self) -> None:
        if self.rows:
            current = 0 if self.selected is None else self.selected
            self.selected = max(0, current - 1)

    def selected_row(self) -> Optional[FilteredRow]:
        if self.selected is None or not 0 <= self.selected < len(self.rows):
            return None
        return self.rows[self.selected]

    def selected_index(self) -> Optional[int]:
        """Store index of the selected row, or None."""
        row = self.selected_row()
        return row.index if row is not None else None
