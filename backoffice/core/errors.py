"""Error taxonomy of the menu editor.

Local validation problems are raised before anything touches the network.
Everything the remote authority can do wrong is either a transport failure
(nothing usable came back) or an explicit rejection (a non-2xx answer with a
message). All of them are recoverable: none ends an editing session.
"""
from typing import Optional


class MenuEditorError(Exception):
    """Base class for every error raised by the editor engine."""


class MenuValidationError(MenuEditorError):
    """Local state cannot be saved or edited as requested."""


class TransportError(MenuEditorError):
    """The authority could not be reached or answered with an unreadable body."""


class WriteRejectedError(MenuEditorError):
    """The authority answered and refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class StructureSyncError(MenuEditorError):
    """A structural save stopped part way through the section loop.

    Sections persisted before the failure stay persisted. ``partial_tree``
    carries every server id learned up to that point so the caller can keep
    them; ``section_client_id`` names the section whose dishes failed, or is
    None when the section skeleton itself failed.
    """

    def __init__(self, message: str, partial_tree=None, section_client_id: Optional[str] = None):
        super().__init__(message)
        self.partial_tree = partial_tree
        self.section_client_id = section_client_id
