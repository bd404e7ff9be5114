"""
Data integrity errors raised when a snapshot cannot be analyzed safely.
"""

from typing import Any, List, Optional, Sequence

MAX_REPORTED_IDS = 10


class DataIntegrityError(Exception):
    """
    Fatal snapshot defect: duplicate identifiers, dangling references,
    negative monetary values or a cycle in the category tree.

    Carries the entity type and offending identifiers so the caller can
    diagnose the source rows.
    """

    def __init__(
        self,
        entity: str,
        message: str,
        offending_ids: Optional[Sequence[Any]] = None,
        check: Optional[str] = None,
    ):
        self.entity = entity
        self.check = check
        self.offending_ids: List[Any] = list(offending_ids or [])

        detail = f"{entity}: {message}"
        if self.offending_ids:
            shown = ", ".join(str(i) for i in self.offending_ids[:MAX_REPORTED_IDS])
            more = len(self.offending_ids) - MAX_REPORTED_IDS
            if more > 0:
                shown = f"{shown} (+{more} more)"
            detail = f"{detail} [ids: {shown}]"
        super().__init__(detail)
