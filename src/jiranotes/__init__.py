"""
=============================================================================
JIRANOTES - Loopback note server for the JiraNotes browser extension
=============================================================================

A small HTTP/1.1 server on raw sockets. The extension running inside a
Jira page talks to it over http://127.0.0.1:18427 to keep one JSON note
per ticket in a local folder.

    ┌──────────────────┐   GET /load?ticketId=ABC-123   ┌────────────────┐
    │ browser extension│ ──────────────────────────────►│ jiranotes      │
    │ (Jira page)      │ ◄──────────────────────────────│ 127.0.0.1:18427│
    └──────────────────┘   {"ticketId":"ABC-123",...}   └───────┬────────┘
                                                                │
                                                       <notes_dir>/ABC-123.json

=============================================================================
QUICK START
=============================================================================

    from jiranotes import NotesServer, ServerConfig

    server = NotesServer(ServerConfig(notes_dir="~/Notes/Jira"))
    server.run()     # blocks until Ctrl+C

or from a shell:

    python -m jiranotes --notes-dir ~/Notes/Jira

=============================================================================
"""

__version__ = "1.0.0"

from .config import DEFAULT_PORT, ServerConfig
from .core.listener import BindError, ServerHandle, start, stop
from .handlers import Capabilities, LocalCapabilities, NotesAPI
from .server import NotesServer
from .store import FileNoteStore, FolderNotSet, NoteStoreError

__all__ = [
    "__version__",
    "DEFAULT_PORT",
    "ServerConfig",
    "BindError",
    "ServerHandle",
    "start",
    "stop",
    "Capabilities",
    "LocalCapabilities",
    "NotesAPI",
    "NotesServer",
    "FileNoteStore",
    "FolderNotSet",
    "NoteStoreError",
]
