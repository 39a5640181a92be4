"""Errors reported by the signing pipeline."""

from typing import Any, Dict


class SigningError(Exception):
    """Base class for every failure a signing call can report."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class MissingParameter(SigningError):
    """A required signing parameter was not supplied."""

    def __init__(self, name: str) -> None:
        super().__init__(f"missing {name}")
        self.name = name


class InvalidQueryString(SigningError):
    """A query string pair did not split into exactly one key and one value."""

    def __init__(self, pair: str) -> None:
        super().__init__("invalid queryString format")
        self.pair = pair


class InvalidDate(SigningError):
    """The Date header could not be parsed as a timestamp."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"invalid Date header: {value!r}")
        self.value = value
