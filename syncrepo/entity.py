"""
Entity binding for SyncRepo.

An EntityBinding is created once per entity type at configuration time.
It resolves how the primary key is read and replaced, and how entities
are converted to and from the JSON records kept by the local store and
sent to the remote store.

Supported entity types:
    - dataclasses
    - pydantic models
    - plain dicts (keyed by the primary key name)

Invariants:
    - The primary key field must exist on the entity type
    - with_key() never mutates the caller's object
    - Records are JSON-compatible dicts (pydantic "json" mode)

Example:
    >>> @dataclass
    ... class Customer:
    ...     id: int = 0
    ...     name: str = ""
    >>> binding = EntityBinding(Customer, primary_key="id")
    >>> binding.log_table_name
    'Customer_LocalTransactions'
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

# Fixed naming convention for the per-entity transaction log table
LOCAL_TRANSACTIONS_SUFFIX = "_LocalTransactions"

ZERO_KEY = 0

T = TypeVar("T")


class EntityBinding(Generic[T]):
    """Typed key accessor/mutator and record codec for one entity type.

    Attributes:
        entity_type: The bound type
        primary_key: Name of the primary key field
        auto_generate_key: Whether the store assigns keys to new entities
        name: Entity name (table name of the primary local table)
    """

    def __init__(
        self,
        entity_type: type[T],
        primary_key: str = "id",
        auto_generate_key: bool = True,
        name: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.primary_key = primary_key
        self.auto_generate_key = auto_generate_key
        self.zero_key: Any = ZERO_KEY

        if isinstance(entity_type, type) and issubclass(entity_type, dict):
            self.name = name or "Record"
        else:
            self.name = name or getattr(entity_type, "__name__", "")
        if not self.name:
            raise ConfigurationError("Entity name could not be determined", setting="name")

        self._get_key, self._with_key = self._resolve_accessors(entity_type, primary_key)
        self._adapter: TypeAdapter[T] = TypeAdapter(entity_type)

    @staticmethod
    def _resolve_accessors(
        entity_type: type,
        primary_key: str,
    ) -> tuple[Callable[[Any], Any], Callable[[Any, Any], Any]]:
        """Pick the key getter and copy-with-key function for the type."""
        if isinstance(entity_type, type) and issubclass(entity_type, BaseModel):
            if primary_key not in entity_type.model_fields:
                raise ConfigurationError(
                    f"Model {entity_type.__name__} has no field '{primary_key}'",
                    setting="primary_key",
                )
            return (
                lambda entity: getattr(entity, primary_key),
                lambda entity, key: entity.model_copy(update={primary_key: key}),
            )

        if dataclasses.is_dataclass(entity_type):
            names = {f.name for f in dataclasses.fields(entity_type)}
            if primary_key not in names:
                raise ConfigurationError(
                    f"Dataclass {entity_type.__name__} has no field '{primary_key}'",
                    setting="primary_key",
                )
            return (
                lambda entity: getattr(entity, primary_key),
                lambda entity, key: dataclasses.replace(entity, **{primary_key: key}),
            )

        if isinstance(entity_type, type) and issubclass(entity_type, dict):
            return (
                lambda entity: entity.get(primary_key),
                lambda entity, key: {**entity, primary_key: key},
            )

        raise ConfigurationError(
            f"Unsupported entity type: {entity_type!r}. "
            "Use a dataclass, a pydantic model or dict.",
            setting="entity_type",
        )

    @property
    def table_name(self) -> str:
        """Local table holding the entities."""
        return self.name

    @property
    def log_table_name(self) -> str:
        """Local table holding pending transactions."""
        return f"{self.name}{LOCAL_TRANSACTIONS_SUFFIX}"

    def get_key(self, entity: T) -> Any:
        """Read the primary key of an entity."""
        return self._get_key(entity)

    def with_key(self, entity: T, key: Any) -> T:
        """Return a copy of the entity carrying the given key."""
        return self._with_key(entity, key)

    def has_zero_key(self, entity: T) -> bool:
        """Whether the entity has not been assigned a key yet."""
        key = self.get_key(entity)
        return key is None or key == self.zero_key

    def to_record(self, entity: T) -> dict[str, Any]:
        """Convert an entity to its JSON record form."""
        return self._adapter.dump_python(entity, mode="json")

    def from_record(self, record: dict[str, Any]) -> T:
        """Convert a JSON record to an entity.

        Raises:
            ValidationError: If the record does not fit the entity type
        """
        try:
            return self._adapter.validate_python(record)
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ValidationError(
                f"Invalid {self.name} record: {'; '.join(errors)}",
                entity_name=self.name,
                errors=errors,
            ) from e

    def __repr__(self) -> str:
        return (
            f"EntityBinding({self.name}, primary_key={self.primary_key!r}, "
            f"auto_generate_key={self.auto_generate_key})"
        )
