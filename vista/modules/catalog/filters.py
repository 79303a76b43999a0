"""
List filters for the catalog repositories.

A ListFilter only expresses what the document store evaluates natively: equality,
an inclusive range on ONE field, and array membership on ONE field, all ANDed.
Anything more (price AND area ranges, say) is fetched with the narrowest native
filter and finished in Python with ``refine``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, TypeVar

from pydantic_core import to_jsonable_python

from vista.errors import ValidationError
from vista.models.common import format_timestamp
from vista.stores.base import Operator, Predicate

T = TypeVar("T")


@dataclass
class ListFilter:
    equals: dict[str, Any] = field(default_factory=dict)
    ranges: dict[str, tuple[Any, Any]] = field(default_factory=dict)  # field -> (start, end), either may be None
    contains: dict[str, Any] = field(default_factory=dict)  # array field -> member
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def fields(self) -> set[str]:
        names = set(self.equals) | set(self.ranges) | set(self.contains)
        if self.order_by:
            names.add(self.order_by)
        return names

    def check_supported(self) -> None:
        if len(self.ranges) > 1:
            raise ValidationError(
                f"Range filters on several fields ({', '.join(sorted(self.ranges))}) are not supported "
                "by the document store; filter on one field and refine the rest client-side"
            )
        if len(self.contains) > 1:
            raise ValidationError("Only one array-membership filter can be used per query")
        if self.limit is not None and self.limit < 1:
            raise ValidationError("limit must be a positive integer")

    def predicates(self) -> list[Predicate]:
        predicates = [Predicate(name, Operator.EQ, encode_value(v)) for name, v in self.equals.items()]
        for name, (start, end) in self.ranges.items():
            if start is not None:
                predicates.append(Predicate(name, Operator.GTE, encode_value(start)))
            if end is not None:
                predicates.append(Predicate(name, Operator.LTE, encode_value(end)))
        predicates.extend(
            Predicate(name, Operator.ARRAY_CONTAINS, encode_value(v)) for name, v in self.contains.items()
        )
        return predicates


def encode_value(value: Any) -> Any:
    """Encode a filter value the same way documents are serialized."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    return to_jsonable_python(value)


def refine(items: Iterable[T], predicate: Callable[[T], bool]) -> list[T]:
    return [item for item in items if predicate(item)]
