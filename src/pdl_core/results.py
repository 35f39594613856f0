"""Discriminated operation results: ``Ok`` carries a value, ``Err`` a kind and message."""
from typing import Generic, Literal, TypeVar, Union

from pydantic import BaseModel

from .errors import ErrorKind

T = TypeVar("T")


class Ok(BaseModel, Generic[T]):
    """Successful operation result."""

    ok: Literal[True] = True
    value: T


class Err(BaseModel):
    """Failed operation result. No state was changed."""

    ok: Literal[False] = False
    kind: ErrorKind
    message: str


Result = Union[Ok[T], Err]
