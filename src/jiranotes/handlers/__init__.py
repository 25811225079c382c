"""
=============================================================================
HANDLERS
=============================================================================

Request handlers for the notes endpoints, plus the Capabilities interface
through which they reach storage, the folder picker and the health probe.

=============================================================================
"""

from .notes import Capabilities, LocalCapabilities, NotesAPI

__all__ = [
    "Capabilities",
    "LocalCapabilities",
    "NotesAPI",
]
