from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Marks a partial-update field the caller did not touch. It is omitted from
# the request body, while None is sent as an explicit JSON null.
UNSET = _Unset.UNSET

Unset = _Unset
Maybe = T | None | _Unset


def is_set(value: Any) -> bool:
    return value is not UNSET


def drop_unset(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: drop_unset(v) for k, v in value.items() if v is not UNSET}
    if isinstance(value, list):
        return [drop_unset(v) for v in value if v is not UNSET]
    return value
