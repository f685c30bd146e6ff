"""Which fields of which datasets to subscribe to."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Dict, List, Protocol

logger = logging.getLogger(__name__)


class SelectionSource(Protocol):
    def selection(self) -> Mapping[int, Sequence[str]]:  # pragma: no cover - protocol
        ...


class StaticSelection:
    """
    Fixed ``{dataset_id: [field_id, ...]}`` selection.

    Field order is preserved; a field selected twice is dropped with a
    warning because the server rejects duplicate fields in a select command.
    """

    def __init__(self, mapping: Mapping[int, Iterable[object]] | None = None) -> None:
        self._selection: Dict[int, List[str]] = {}
        for dataset_id, fields in (mapping or {}).items():
            for field_id in fields:
                self.add(int(dataset_id), field_id)

    @classmethod
    def from_pairs(cls, pairs: Iterable[str]) -> "StaticSelection":
        """
        Build from ``"dataset,field"`` strings, the encoding used by the
        subscription form (e.g. ``"1,t"``).
        """
        selection = cls()
        for raw in pairs:
            text = str(raw).strip()
            if not text:
                continue
            dataset_part, sep, field_part = text.partition(",")
            if not sep or not field_part.strip():
                raise ValueError(f"Expected 'dataset,field', got {raw!r}")
            try:
                dataset_id = int(dataset_part.strip())
            except ValueError as exc:
                raise ValueError(f"Invalid dataset id in {raw!r}") from exc
            selection.add(dataset_id, field_part.strip())
        return selection

    def add(self, dataset_id: int, field_id: object) -> None:
        fields = self._selection.setdefault(int(dataset_id), [])
        key = str(field_id)
        if key in fields:
            logger.warning("Field %s of dataset %d selected twice; ignoring duplicate", key, dataset_id)
            return
        fields.append(key)

    def selection(self) -> Mapping[int, Sequence[str]]:
        return {ds: list(fields) for ds, fields in self._selection.items() if fields}

    def __bool__(self) -> bool:
        return any(self._selection.values())

    def __repr__(self) -> str:
        return f"StaticSelection({self.selection()!r})"
