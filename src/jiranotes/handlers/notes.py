"""
=============================================================================
NOTES API HANDLERS
=============================================================================

The four endpoints the browser extension calls.

    ┌────────┬─────────┬─────────────────────────┬──────────────────────────┐
    │ Method │ Path    │ Input                   │ Response                 │
    ├────────┼─────────┼─────────────────────────┼──────────────────────────┤
    │ GET    │ /ping   │ -                       │ 200 {"ok":true}          │
    │ POST   │ /choose │ -                       │ 200 {"ok":true}          │
    │ GET    │ /load   │ ?ticketId=              │ 200 note JSON or {}      │
    │ POST   │ /save   │ ?ticketId= + JSON body  │ 200 {"ok":true,"path":…} │
    │        │         │                         │ 400 {"error":…}          │
    └────────┴─────────┴─────────────────────────┴──────────────────────────┘

=============================================================================
CAPABILITIES
=============================================================================

Handlers never touch the filesystem or the UI directly. They get a
Capabilities object in their constructor:

    read_note(key)           -> bytes | None
    write_note(key, data)    -> path   (raises NoteStoreError)
    trigger_folder_picker()  -> None   (must not block)
    health_check()           -> bool

Tests pass an in-memory fake; the server passes LocalCapabilities.

=============================================================================
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import Callable, Optional

from ..http.request import Request
from ..http.response import Response, bad, json_response, ok_json, ok_json_raw
from ..http.router import Router
from ..store import FileNoteStore, FolderNotSet, NoteStoreError


logger = logging.getLogger(__name__)


EMPTY_NOTE = b"{}"

MISSING_PARAMS = "missing params"


class Capabilities(ABC):
    """Side effects available to the handlers."""

    @abstractmethod
    def read_note(self, key: str) -> Optional[bytes]:
        """Stored payload for key, or None."""

    @abstractmethod
    def write_note(self, key: str, data: bytes) -> str:
        """Store data under key and return where it went."""

    @abstractmethod
    def trigger_folder_picker(self) -> None:
        """Ask the user for a notes folder. Returns immediately."""

    @abstractmethod
    def health_check(self) -> bool:
        """True when the server can serve requests."""


class LocalCapabilities(Capabilities):
    """
    Capabilities backed by a FileNoteStore.

    Args:
        store: Where notes live.
        picker: Called (on a background thread) when /choose is hit. It
                may call store.set_directory() with the chosen folder.
        health: Optional extra health probe; defaults to always healthy.
    """

    def __init__(
        self,
        store: FileNoteStore,
        picker: Optional[Callable[[], None]] = None,
        health: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self._picker = picker
        self._health = health

    def read_note(self, key: str) -> Optional[bytes]:
        return self.store.read_note(key)

    def write_note(self, key: str, data: bytes) -> str:
        return self.store.write_note(key, data)

    def trigger_folder_picker(self) -> None:
        if self._picker is None:
            logger.info("Folder picker requested but none is configured")
            return
        threading.Thread(target=self._run_picker, name="jiranotes-picker", daemon=True).start()

    def _run_picker(self):
        try:
            self._picker()
        except Exception as e:
            logger.exception(f"Folder picker failed: {e}")

    def health_check(self) -> bool:
        if self._health is None:
            return True
        return bool(self._health())


class NotesAPI:
    """
    Route handlers for the notes endpoints.

    Usage:
        api = NotesAPI(LocalCapabilities(FileNoteStore("~/Notes")))
        router = api.register(Router())
        response = router.dispatch(request)
    """

    def __init__(self, capabilities: Capabilities):
        self.capabilities = capabilities

    def register(self, router: Router) -> Router:
        router.add_route("GET", "/ping", self.ping)
        router.add_route("POST", "/choose", self.choose)
        router.add_route("GET", "/load", self.load)
        router.add_route("POST", "/save", self.save)
        return router

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def ping(self, request: Request) -> Response:
        if self.capabilities.health_check():
            return ok_json({"ok": True})
        return json_response(HTTPStatus.SERVICE_UNAVAILABLE, {"ok": False})

    def choose(self, request: Request) -> Response:
        self.capabilities.trigger_folder_picker()
        return ok_json({"ok": True})

    def load(self, request: Request) -> Response:
        """
        Return the stored note verbatim.

        A missing id or a ticket with no note is not an error: the
        extension shows an empty editor, so the answer is {}.
        """
        ticket_id = request.get_query("ticketId")
        if not ticket_id:
            return ok_json_raw(EMPTY_NOTE)

        data = self.capabilities.read_note(ticket_id)
        return ok_json_raw(data if data else EMPTY_NOTE)

    def save(self, request: Request) -> Response:
        ticket_id = request.get_query("ticketId")
        if not ticket_id or not request.body:
            return bad(MISSING_PARAMS)

        if not _is_json_object(request.body_text):
            return bad("invalid JSON body")

        try:
            path = self.capabilities.write_note(ticket_id, request.body)
        except FolderNotSet:
            return bad(MISSING_PARAMS)
        except NoteStoreError as e:
            return bad(f"write failed: {e}")

        return ok_json({"ok": True, "path": path})


def _is_json_object(text: Optional[str]) -> bool:
    if text is None:
        return False
    try:
        return isinstance(json.loads(text), dict)
    except ValueError:
        return False
