"""Errors raised by the external fetch engine adapter."""

from __future__ import annotations


class FetchEngineError(Exception):
    """The fetch engine rejected a call or could not be reached."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class FetchEngineMalformedResponse(FetchEngineError):
    """The fetch engine answered with an envelope of unexpected shape."""
