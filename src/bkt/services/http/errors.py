"""Errors surfaced by the transport and the API bindings."""

from http import HTTPStatus
from typing import Any


class BitbucketError(Exception):
    """Base class for every error raised by bkt."""


class InvalidInputError(BitbucketError, ValueError):
    def __init__(self, message: str) -> None:
        super().__init__(message)

    @classmethod
    def required(cls, field: str) -> "InvalidInputError":
        return cls(f"{field} is required")


class TransportFailure(BitbucketError):
    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"transport error: {cause}")


class RequestTimedOut(BitbucketError, TimeoutError):
    def __init__(self) -> None:
        super().__init__("request timed out")


class RequestCancelled(BitbucketError):
    def __init__(self) -> None:
        super().__init__("cancelled")


class DecodeError(BitbucketError):
    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"decode response: {cause}")


class APIError(BitbucketError):
    """Non-2xx response from Bitbucket."""

    def __init__(self, status_code: int, message: str, body: bytes = b"") -> None:
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(self._format())

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.status_code).phrase
        except ValueError:
            return "Unknown"

    @property
    def conflict(self) -> bool:
        return self.status_code == HTTPStatus.CONFLICT

    @property
    def not_found(self) -> bool:
        return self.status_code == HTTPStatus.NOT_FOUND

    def _format(self) -> str:
        head = f"{self.status_code} {self.reason}"
        if self.message:
            return f"{head}: {self.message}"
        return head

    @classmethod
    def from_body(cls, status_code: int, body: bytes, payload: Any = None) -> "APIError":
        return cls(status_code, extract_message(body, payload), body)


def extract_message(body: bytes, payload: Any = None) -> str:
    # Bitbucket DC: {"errors": [{"message": ...}]}; Cloud: {"error": {"message": ...}}
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message")
            if message:
                return str(message)
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return body.decode("utf-8", errors="replace").strip()
