"""Custom exception hierarchy for tagstore."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for all tagstore errors."""


class StoreConfigError(StoreError):
    """Invalid or missing configuration."""


class StoreArgumentError(StoreError, ValueError):
    """A public operation received a malformed argument."""


class StoreLookupError(StoreError, LookupError):
    """A named action, action type or endpoint is not registered."""

    def __init__(self, message: str, *, type: str = "", name: str = "") -> None:
        self.type = type
        self.name = name
        super().__init__(message)


class StoreTransportError(StoreError):
    """HTTP-level failure (network, non-2xx, invalid JSON).

    The server-supplied ``message`` field is used as the error text when the
    response body carries one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)
