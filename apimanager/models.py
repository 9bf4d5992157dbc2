# apimanager/models.py
"""
Outcome and response types delivered through a Signal.

Outcome:
- InProgress: optimistic notification right after the request is issued
- Success(data): data is a ParsedResponse
- Failed(error): error is an APIError (or subclass)

ParsedResponse:
- Item(value): non-array JSON fed through the result type (value may be None)
- Collection(items): array JSON mapped element-wise, failures dropped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Protocol, Type, TypeVar, Union, runtime_checkable

from pydantic import BaseModel, ValidationError

from apimanager.errors import APIError, ErrorKind

log = logging.getLogger(__name__)

R = TypeVar("R")
P = TypeVar("P", bound="Parsable")


# -----------------------------
# Parsed responses
# -----------------------------

@dataclass(frozen=True)
class Item(Generic[R]):
    value: Optional[R]


@dataclass(frozen=True)
class Collection(Generic[R]):
    items: List[R] = field(default_factory=list)


ParsedResponse = Union[Item[R], Collection[R]]


# -----------------------------
# Outcomes
# -----------------------------

@dataclass(frozen=True)
class InProgress:
    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class Success(Generic[R]):
    data: ParsedResponse

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    error: APIError

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def kind(self) -> ErrorKind:
        return getattr(self.error, "kind", ErrorKind.UNKNOWN)


Outcome = Union[InProgress, Success, Failed]


# -----------------------------
# Parsing capability
# -----------------------------

@runtime_checkable
class Parsable(Protocol):
    """Any type that can try to build itself from decoded JSON."""

    @classmethod
    def from_json(cls: Type[P], payload: Any) -> Optional[P]:
        ...


@dataclass(frozen=True)
class RawJSON:
    """Default result type: keeps the decoded value as is."""
    value: Any

    @classmethod
    def from_json(cls, payload: Any) -> "RawJSON":
        return cls(value=payload)


_CONSTRUCTION_ERRORS = (ValidationError, ValueError, TypeError, KeyError)


def construct(result_type: Type[R], payload: Any) -> Optional[R]:
    """
    Build one instance of result_type, None when construction fails.

    Pydantic models are validated with model_validate; everything else
    goes through its from_json classmethod.
    """
    try:
        if isinstance(result_type, type) and issubclass(result_type, BaseModel):
            return result_type.model_validate(payload)
        return result_type.from_json(payload)  # type: ignore[attr-defined]
    except _CONSTRUCTION_ERRORS as e:
        log.debug("construct %s failed: %s", getattr(result_type, "__name__", result_type), e)
        return None


def parse_response(result_type: Type[R], payload: Any) -> ParsedResponse:
    if isinstance(payload, list):
        items: List[R] = []
        for element in payload:
            obj = construct(result_type, element)
            if obj is not None:
                items.append(obj)
        return Collection(items=items)

    return Item(value=construct(result_type, payload))
