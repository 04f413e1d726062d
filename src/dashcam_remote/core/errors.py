"""Error taxonomy for the remote-command engine."""

from __future__ import annotations


class RemoteError(Exception):
    """Base class for all remote-command errors."""


class UpdateSourceError(RemoteError):
    """A call against a chat platform failed."""


class HandshakeFailure(UpdateSourceError):
    """The identity check against the platform failed at startup."""


class TransientFetchFailure(UpdateSourceError):
    """Fetching updates failed; the poll loop retries."""


class SendFailure(UpdateSourceError):
    """Sending a message, chat action or photo failed."""


class DispatchFailure(RemoteError):
    """Handling a single incoming message failed."""

    def __init__(self, update_id: int, cause: BaseException):
        super().__init__(f"update {update_id}: {cause}")
        self.update_id = update_id
        self.cause = cause
