"""
Chat relay server package.

Main exports:
- Server: Main server class
- ClientSession: Individual client handler
- ConnectionRegistry: Active sessions and broadcast
- IdentifierAllocator: Per-connection identifiers
"""

from .identifiers import ExhaustedSpace, IdentifierAllocator
from .registry import ConnectionRegistry
from .server import Server
from .session import ClientSession, SessionState

__version__ = "1.0.0"
__all__ = [
    'Server',
    'ClientSession',
    'SessionState',
    'ConnectionRegistry',
    'IdentifierAllocator',
    'ExhaustedSpace',
]
