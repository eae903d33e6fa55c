"""Checkbox selection over the visible rows of a record list.

A :class:`RecordSelection` is rebuilt on every request from the ids stored in
the session and the ids of the currently filtered view.  Ids that are no longer
visible are dropped at that point, so the selection is always a subset of what
the reviewer can see.  Only reviewers with admin rights may change it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from django.core.exceptions import PermissionDenied

from fieldreports.records import BULK_STATUSES

logger = logging.getLogger(__name__)

SESSION_KEY = 'record_selection'

# Callable receiving the selected ids and the target status.
Dispatch = Callable[[List[str], str], Any]


class RecordSelection:
    """Selected record ids, kept in the order they were picked."""

    def __init__(
        self,
        selected: Iterable[str] = (),
        *,
        visible_ids: Sequence[str] = (),
        can_edit_status: bool = False,
    ) -> None:
        self.visible_ids: List[str] = list(dict.fromkeys(str(rid) for rid in visible_ids))
        self.can_edit_status = can_edit_status
        visible = set(self.visible_ids)
        pruned: List[str] = []
        for record_id in selected:
            record_id = str(record_id)
            if record_id in visible and record_id not in pruned:
                pruned.append(record_id)
        self._selected = pruned

    @property
    def ids(self) -> List[str]:
        return list(self._selected)

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._selected

    @property
    def all_selected(self) -> bool:
        return bool(self.visible_ids) and len(self._selected) == len(self.visible_ids)

    def _require_admin(self) -> None:
        if not self.can_edit_status:
            raise PermissionDenied('Only administrators may change record approval.')

    def toggle(self, record_id: str) -> None:
        self._require_admin()
        record_id = str(record_id)
        if record_id in self._selected:
            self._selected.remove(record_id)
            return
        if record_id not in self.visible_ids:
            logger.debug("Ignoring selection of %s which is not in the current view", record_id)
            return
        self._selected.append(record_id)

    def toggle_all(self) -> None:
        """Clear when everything visible is selected, otherwise select the whole view."""

        self._require_admin()
        if len(self._selected) == len(self.visible_ids):
            self._selected = []
        else:
            self._selected = list(self.visible_ids)

    def clear(self) -> None:
        self._selected = []

    def bulk_update(self, status: str, dispatch: Dispatch) -> Optional[Any]:
        """Send one status change for every selected id and clear the selection.

        Returns whatever ``dispatch`` returned, or ``None`` when nothing was
        selected and no request was made.
        """

        self._require_admin()
        if not self._selected:
            return None
        if status not in BULK_STATUSES:
            raise ValueError(f'Unsupported bulk status: {status!r}')
        ids = list(self._selected)
        result = dispatch(ids, status)
        # Cleared without waiting for the store to confirm.
        self._selected = []
        return result


__all__ = ['RecordSelection', 'SESSION_KEY']
