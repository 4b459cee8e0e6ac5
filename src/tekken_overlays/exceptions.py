"""Exception types shared across the server, transport and overlay layers."""


class OverlayError(Exception):
    """Base class for all tekken-overlays errors."""


class PayloadError(OverlayError):
    """An event payload could not be decoded into a known shape."""

    def __init__(self, event: str, message: str) -> None:
        super().__init__(f"{event}: {message}")
        self.event = event


class DetailFetchError(OverlayError):
    """Fetching entity detail from the REST boundary failed."""

    def __init__(self, kind: str, entity_id: int, cause: Exception | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to fetch {kind} {entity_id}{detail}")
        self.kind = kind
        self.entity_id = entity_id
        self.cause = cause


class TransportError(OverlayError):
    """The realtime transport is not connected or refused the connection."""


class UnknownChannelError(OverlayError):
    """A channel name could not be mapped to a known channel."""
