"""
LSP transport for the host side.
"""

from .channel import LspChannel
from .server import StubtreeServer, create_server

__all__ = ["LspChannel", "StubtreeServer", "create_server"]
