from __future__ import annotations

import pytest

from livetrace.core.selection import StaticSelection


def test_mapping_is_normalised_to_string_fields() -> None:
    selection = StaticSelection({"1": [0, "h"], 2: []})
    assert selection.selection() == {1: ["0", "h"]}
    assert selection


def test_from_pairs_preserves_order_and_drops_duplicates(caplog: pytest.LogCaptureFixture) -> None:
    selection = StaticSelection.from_pairs(["1,t", " 1 , h ", "4,a", "1,t", ""])

    assert selection.selection() == {1: ["t", "h"], 4: ["a"]}
    assert "selected twice" in caplog.text


@pytest.mark.parametrize("pair", ["1", "x,t", "1,"])
def test_from_pairs_rejects_bad_input(pair: str) -> None:
    with pytest.raises(ValueError):
        StaticSelection.from_pairs([pair])


def test_empty_selection_is_falsy() -> None:
    assert not StaticSelection()
    assert not StaticSelection({1: []})
