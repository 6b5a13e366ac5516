"""Unit tests for the LSP message channel."""

import logging
from collections import namedtuple
from types import SimpleNamespace
from unittest.mock import MagicMock

from stubtree.config import DEFAULT_LSP_METHOD
from stubtree.lsp.channel import LspChannel, to_plain
from stubtree.lsp.server import path_to_uri, selection_range

Envelope = namedtuple("Envelope", ["type", "serverRequestId", "serverResponse"])


class TestToPlain:
    def test_namedtuple_params(self):
        params = Envelope(type="serverResponse", serverRequestId="r1", serverResponse=[{"a": 1}])

        assert to_plain(params) == {
            "type": "serverResponse",
            "serverRequestId": "r1",
            "serverResponse": [{"a": 1}],
        }

    def test_object_params(self):
        params = SimpleNamespace(type="connectionStatus", isConnected=True)

        assert to_plain(params) == {"type": "connectionStatus", "isConnected": True}

    def test_plain_values(self):
        assert to_plain({"x": (1, 2)}) == {"x": [1, 2]}
        assert to_plain("text") == "text"
        assert to_plain(None) is None


class TestLspChannel:
    def test_registers_notification_handler(self):
        server = MagicMock()

        channel = LspChannel(server)

        server.feature.assert_called_once_with(DEFAULT_LSP_METHOD)
        server.feature.return_value.assert_called_once_with(channel._on_notification)

    def test_post_sends_notification(self):
        server = MagicMock()
        channel = LspChannel(server, "custom/message")

        channel.post({"type": "connectionStatus", "isConnected": True})

        server.protocol.notify.assert_called_once_with(
            "custom/message", {"type": "connectionStatus", "isConnected": True}
        )

    def test_notifications_reach_listeners(self):
        channel = LspChannel(MagicMock())
        received = []
        dispose = channel.add_listener(received.append)

        channel._on_notification(Envelope(type="serverResponse", serverRequestId="r1", serverResponse=None))
        dispose()
        channel._on_notification({"type": "ignored"})

        assert received == [{"type": "serverResponse", "serverRequestId": "r1", "serverResponse": None}]

    def test_listener_failure_is_isolated(self, caplog):
        channel = LspChannel(MagicMock())
        received = []
        channel.add_listener(MagicMock(side_effect=RuntimeError("boom")))
        channel.add_listener(received.append)

        channel._on_notification({"type": "x"})

        assert received == [{"type": "x"}]
        assert "boom" in caplog.text

    def test_non_object_params_are_ignored(self, caplog):
        channel = LspChannel(MagicMock())
        listener = MagicMock()
        channel.add_listener(listener)

        with caplog.at_level(logging.WARNING):
            channel._on_notification(["not", "an", "object"])

        listener.assert_not_called()
        assert "non-object params" in caplog.text


class TestEditorHelpers:
    def test_selection_range_is_clamped(self):
        selection = selection_range(-3, -5)
        assert (selection.start.line, selection.end.line) == (0, 0)

        selection = selection_range(12, 4)
        assert (selection.start.line, selection.end.line) == (12, 12)

    def test_path_to_uri(self, tmp_path):
        path = tmp_path / "svc.py"

        assert path_to_uri(str(path)) == path.resolve().as_uri()
        assert path_to_uri(str(path)).startswith("file://")
