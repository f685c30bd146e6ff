"""Outbound text commands understood by the data server."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Optional

SELECT = "/select_uncompressed"
META = "/meta"
DATA = "/data"
SUB = "/sub"
UNSUB = "/unsub"

Selection = Mapping[int, Sequence[str]]


def _format_ts(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def select_command(
    start_ts: float,
    stop_ts: float,
    dataset_id: int,
    field_ids: Sequence[str],
) -> str:
    """
    Build ``/select_uncompressed <start> <stop> <dataset> <field> [...]``.

    Raises ``ValueError`` for an empty field list; the server silently ignores
    such a command, which would leave the dataset out of the metadata.
    """
    if not field_ids:
        raise ValueError(f"dataset {dataset_id} has no selected fields")
    parts = [SELECT, _format_ts(start_ts), _format_ts(stop_ts), str(int(dataset_id))]
    parts.extend(str(field_id) for field_id in field_ids)
    return " ".join(parts)


def subscription_commands(
    selection: Selection,
    start_ts: float = 0,
    stop_ts: float = 0,
) -> Iterator[str]:
    """Yield one select command per dataset that has at least one field."""
    for dataset_id in sorted(selection):
        fields = list(selection[dataset_id])
        if not fields:
            continue
        yield select_command(start_ts, stop_ts, dataset_id, fields)


def meta_command(max_plot_points: Optional[int] = None) -> str:
    """``/meta``, optionally with the server-side down-sampling target."""
    if max_plot_points is None:
        return META
    return f"{META} {int(max_plot_points)}"


__all__ = [
    "SELECT",
    "META",
    "DATA",
    "SUB",
    "UNSUB",
    "Selection",
    "select_command",
    "subscription_commands",
    "meta_command",
]
