"""Exceptions raised by the feed generator."""


class InvalidRequestError(Exception):
    """A feed request the caller must fix. Rendered as an XRPC 400 error body."""

    def __init__(self, message: str, error: str = "InvalidRequest"):
        super().__init__(message)
        self.message = message
        self.error = error


class StreamError(Exception):
    """Transport-level firehose failure. The subscription reconnects on it."""


class StreamClosedError(StreamError):
    pass


class StreamStalledError(StreamError):
    pass


class MalformedMessageError(StreamError):
    pass
