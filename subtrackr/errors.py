from __future__ import annotations


class SubtrackrError(Exception):
    """Base class for errors raised by the tracker."""


class NotFoundError(SubtrackrError):
    pass


class ChannelNotConfiguredError(SubtrackrError):
    """Raised by a delivery channel whose credentials are missing."""

    def __init__(self, channel: str, detail: str = "") -> None:
        self.channel = channel
        message = f"{channel} channel not configured"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DeliveryError(SubtrackrError):
    """Transport-level failure while sending a message."""


class ChannelDisabledError(SubtrackrError):
    """The user has not opted in to the requested channel."""
