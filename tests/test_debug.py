from __future__ import annotations

import logging

import pytest

from livetrace.tools import debug


def test_time_block_is_silent_by_default(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(debug, "DEBUG_LIVETRACE", False)
    with caplog.at_level(logging.DEBUG, logger="livetrace.tools.debug"):
        with debug.time_block("decode"):
            pass
    assert not debug.debug_enabled()
    assert caplog.records == []


def test_time_block_logs_elapsed_time_when_enabled(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setattr(debug, "DEBUG_LIVETRACE", True)
    with caplog.at_level(logging.DEBUG, logger="livetrace.tools.debug"):
        with debug.time_block("decode"):
            pass
    assert debug.debug_enabled()
    assert "decode took" in caplog.text
