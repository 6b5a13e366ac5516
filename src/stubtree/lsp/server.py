"""
LSP host server for stubtree.

Runs the host side of the broker inside a pygls language server. The editor
extension forwards sidebar envelopes as `stubtree/message` notifications;
the server answers them from the analysis backend and reveals highlighted
dependencies with `window/showDocument`.
"""

import logging
from pathlib import Path
from typing import Optional

from lsprotocol.types import (
    INITIALIZED,
    SHUTDOWN,
    InitializedParams,
    Position,
    Range,
    ShowDocumentParams,
)
from pygls.lsp.server import LanguageServer

from .. import __version__
from ..broker.broker import CorrelationBroker
from ..config import CONNECTION_STATUS_MESSAGE, StubtreeConfig
from ..host.backend import AnalysisBackend
from ..host.handlers import HostHandlers, PromptBuilder
from .channel import LspChannel

logger = logging.getLogger(__name__)


def path_to_uri(file_path: str) -> str:
    return Path(file_path).resolve().as_uri()


def selection_range(start_line: int, end_line: int) -> Range:
    start = max(start_line, 0)
    end = max(end_line, start)
    return Range(start=Position(line=start, character=0), end=Position(line=end, character=0))


class StubtreeServer(LanguageServer):
    """Language server hosting the broker and the host endpoints."""

    def __init__(
        self,
        backend: AnalysisBackend,
        config: StubtreeConfig,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        super().__init__("stubtree", f"v{__version__}")
        self.config = config
        self.channel = LspChannel(self, config.lsp_method)
        self.broker = CorrelationBroker(
            self.channel, default_timeout_ms=config.request_timeout_ms, name="host"
        )
        self.handlers = HostHandlers(
            self.broker,
            backend,
            highlighter=self.show_range,
            prompt_builder=prompt_builder,
        )
        self.handlers.register_all()

    async def show_range(self, file_path: str, start_line: int, end_line: int) -> None:
        logger.info(f"Highlighting {file_path}:{start_line}-{end_line}")
        await self.window_show_document_async(
            ShowDocumentParams(
                uri=path_to_uri(file_path),
                take_focus=True,
                selection=selection_range(start_line, end_line),
            )
        )


def create_server(
    backend: AnalysisBackend,
    config: Optional[StubtreeConfig] = None,
    prompt_builder: Optional[PromptBuilder] = None,
) -> StubtreeServer:
    """Build a ready-to-run host server."""
    server = StubtreeServer(backend, config or StubtreeConfig(), prompt_builder)

    @server.feature(INITIALIZED)
    def initialized(ls: StubtreeServer, params: InitializedParams):
        """Tell the sidebar the backend is reachable."""
        logger.info("stubtree host initialized")
        ls.broker.notify(CONNECTION_STATUS_MESSAGE, {"isConnected": True})

    @server.feature(SHUTDOWN)
    def shutdown(ls: StubtreeServer, params):
        """Release the broker before the connection closes."""
        ls.handlers.unregister_all()
        ls.broker.dispose()

    return server


def serve(backend: AnalysisBackend, config: StubtreeConfig) -> None:
    """Run the host server on stdio until the client disconnects."""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    server = create_server(backend, config)
    logger.info("Starting stubtree host on stdio")
    server.start_io()
