"""
Typed failures of the OSM sync core.

Every HTTP-backed failure keeps the status code and response body the
server sent (status 0 means the request never got a response).
"""
from typing import Optional

class OsmSyncError(Exception):
    """Base class for everything the sync core raises."""

class CredentialsMissing(OsmSyncError):
    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"OSM credentials not configured (missing: {', '.join(self.missing)})")

class HttpFailure(OsmSyncError):
    action = "call OSM API"

    def __init__(self, status: int, body: str = "", message: Optional[str] = None):
        self.status = int(status or 0)
        self.body = body or ""
        if message is None:
            message = f"Failed to {self.action}: {self.status} {self.body}".rstrip()
        super().__init__(message)

class TokenExchangeFailed(HttpFailure):
    action = "exchange OSM token"

class ChangesetOpenFailed(HttpFailure):
    action = "create changeset"

class ChangesetCloseFailed(HttpFailure):
    action = "close changeset"

class FetchFailed(HttpFailure):
    action = "fetch element"

class CreateFailed(HttpFailure):
    action = "create node"

class UpdateFailed(HttpFailure):
    action = "update element"

class VersionConflict(UpdateFailed):
    def __init__(self, element_type: str, element_id: int, version: int, body: str = ""):
        self.element_type = element_type
        self.element_id = element_id
        self.version = version
        super().__init__(
            409, body,
            f"Version conflict: {element_type} {element_id} was modified since version {version}",
        )

class ElementGone(OsmSyncError):
    def __init__(self, element_type: str, element_id: int, body: str = ""):
        self.element_type = element_type
        self.element_id = element_id
        self.status = 410
        self.body = body or ""
        super().__init__(f"{element_type.capitalize()} {element_id} has been deleted")

class DuplicateCheckFailed(OsmSyncError):
    """Internal to the duplicate matcher; never escapes find_duplicates()."""

class PublishFailed(OsmSyncError):
    def __init__(
        self,
        cause: Exception,
        state=None,
        changeset_id: Optional[int] = None,
        element_id: Optional[int] = None,
        close_error: Optional[Exception] = None,
    ):
        self.cause = cause
        self.state = state
        self.changeset_id = changeset_id
        self.element_id = element_id
        self.close_error = close_error
        msg = f"Publish failed: {cause}"
        if close_error is not None:
            msg += f" (changeset close also failed: {close_error})"
        super().__init__(msg)
