"""
Query filters for SyncRepo.

A QueryFilter is evaluated against JSON records. The offline path loads
every local record and filters in-process; the online path sends the
filter to the remote store, whose reference implementation evaluates it
with the same code. Both paths therefore return the same entities for
the same data.

Invariants:
    - All properties must match (AND semantics)
    - String comparisons ignore case unless case_sensitive is set
    - A missing/None field only matches eq None or ne <value>
    - Ordering is stable and puts None values last; mixed types are
      grouped (numbers before strings before anything else)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable


class FilterOperator(str, Enum):
    """Comparison applied by a FilterProperty."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    LESS_THAN = "lt"
    LESS_OR_EQUAL = "le"
    GREATER_THAN = "gt"
    GREATER_OR_EQUAL = "ge"
    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"


_COMPARATORS: dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQUALS: lambda a, b: a == b,
    FilterOperator.NOT_EQUALS: lambda a, b: a != b,
    FilterOperator.LESS_THAN: lambda a, b: a < b,
    FilterOperator.LESS_OR_EQUAL: lambda a, b: a <= b,
    FilterOperator.GREATER_THAN: lambda a, b: a > b,
    FilterOperator.GREATER_OR_EQUAL: lambda a, b: a >= b,
    FilterOperator.CONTAINS: lambda a, b: str(b) in str(a),
    FilterOperator.STARTS_WITH: lambda a, b: str(a).startswith(str(b)),
    FilterOperator.ENDS_WITH: lambda a, b: str(a).endswith(str(b)),
}


@dataclass
class FilterProperty:
    """One predicate over a record field.

    Attributes:
        name: Field name
        value: Value to compare against
        operator: Comparison to apply
        case_sensitive: Compare strings with case
    """

    name: str
    value: Any
    operator: FilterOperator = FilterOperator.EQUALS
    case_sensitive: bool = False

    def matches(self, record: dict[str, Any]) -> bool:
        """Test the predicate against one record."""
        actual = record.get(self.name)
        expected = self.value

        if actual is None or expected is None:
            if self.operator == FilterOperator.EQUALS:
                return actual is None and expected is None
            if self.operator == FilterOperator.NOT_EQUALS:
                return actual is not expected
            return False

        if not self.case_sensitive:
            if isinstance(actual, str):
                actual = actual.lower()
            if isinstance(expected, str):
                expected = expected.lower()

        try:
            return _COMPARATORS[self.operator](actual, expected)
        except TypeError:
            # Incomparable types (e.g. str < int) never match
            return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "operator": self.operator.value,
            "case_sensitive": self.case_sensitive,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterProperty:
        return cls(
            name=data["name"],
            value=data.get("value"),
            operator=FilterOperator(data.get("operator", FilterOperator.EQUALS.value)),
            case_sensitive=bool(data.get("case_sensitive", False)),
        )


@dataclass
class QueryFilter:
    """A bundle of predicates plus ordering.

    Example:
        >>> f = QueryFilter(order_by="name").where("name", "ac", FilterOperator.STARTS_WITH)
        >>> f.apply([{"name": "Acme"}, {"name": "Globex"}])
        [{'name': 'Acme'}]
    """

    properties: list[FilterProperty] = field(default_factory=list)
    order_by: str | None = None
    descending: bool = False

    def where(
        self,
        name: str,
        value: Any,
        operator: FilterOperator = FilterOperator.EQUALS,
        case_sensitive: bool = False,
    ) -> QueryFilter:
        """Add a predicate. Returns self for chaining."""
        self.properties.append(FilterProperty(name, value, operator, case_sensitive))
        return self

    def matches(self, record: dict[str, Any]) -> bool:
        return all(prop.matches(record) for prop in self.properties)

    def apply(self, records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Filter and order records.

        Args:
            records: JSON records to evaluate

        Returns:
            Matching records, ordered if order_by is set
        """
        selected = [record for record in records if self.matches(record)]
        if self.order_by is None:
            return selected

        order_by = self.order_by
        present = [r for r in selected if r.get(order_by) is not None]
        missing = [r for r in selected if r.get(order_by) is None]

        def sort_key(record: dict[str, Any]) -> tuple[Any, ...]:
            # Numbers, then strings, then anything else grouped by type
            value = record[order_by]
            if isinstance(value, (int, float)):
                return (0, "", value)
            if isinstance(value, str):
                return (1, "", value.lower())
            return (2, type(value).__name__, str(value))

        present.sort(key=sort_key, reverse=self.descending)
        return present + missing

    def to_dict(self) -> dict[str, Any]:
        return {
            "properties": [prop.to_dict() for prop in self.properties],
            "order_by": self.order_by,
            "descending": self.descending,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryFilter:
        return cls(
            properties=[FilterProperty.from_dict(p) for p in data.get("properties", [])],
            order_by=data.get("order_by"),
            descending=bool(data.get("descending", False)),
        )
