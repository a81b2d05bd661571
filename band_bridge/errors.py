class BandBridgeError(Exception):
    """Base class for errors raised inside the bridge."""


class LinkError(BandBridgeError):
    """Discovery, connect or subscribe failed, or the link dropped."""


class DecodeError(BandBridgeError):
    """A telemetry frame was not valid UTF-8 JSON object text."""

    def __init__(self, message: str, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = raw


class DispatchError(BandBridgeError):
    """The alert webhook could not be reached."""
