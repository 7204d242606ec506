"""Errors raised or reported by the discovery core."""


class InvalidStateError(RuntimeError):
    """An operation was attempted in a state that forbids it.

    Currently raised only by `BrowseSession.start()` while already
    searching. Recoverable: stop the session, then start it again.
    """


class DiscoveryMechanismError(Exception):
    """The underlying discovery mechanism failed and the search ended.

    Never raised to callers of `BrowseSession`; it is delivered through the
    diagnostic channel instead.
    """

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code: int = code
        super().__init__(
            message or f"Discovery mechanism failed with error code {code}."
        )
