"""
Unit tests for EntityBinding.

Tests cover:
- Key access for dataclasses, pydantic models and dicts
- Copy-with-key semantics
- Record conversion and validation errors
- Configuration errors
"""

from dataclasses import dataclass

import pytest
from pydantic import BaseModel

from syncrepo.entity import EntityBinding
from syncrepo.errors import ConfigurationError, ValidationError


@dataclass
class Customer:
    id: int = 0
    name: str = ""


class Product(BaseModel):
    sku: str
    price: float = 0.0


class TestEntityBinding:
    """Tests for EntityBinding."""

    def test_names(self):
        """Table names follow the entity name."""
        binding = EntityBinding(Customer)

        assert binding.name == "Customer"
        assert binding.table_name == "Customer"
        assert binding.log_table_name == "Customer_LocalTransactions"

    def test_dict_binding_needs_no_model(self):
        """Dict records default to the Record name."""
        assert EntityBinding(dict).name == "Record"
        assert EntityBinding(dict, name="Order").log_table_name == "Order_LocalTransactions"

    def test_dataclass_with_key_copies(self):
        """with_key returns a copy and leaves the original untouched."""
        binding = EntityBinding(Customer)
        original = Customer(id=5, name="Acme")

        copy = binding.with_key(original, 57)

        assert copy.id == 57
        assert copy.name == "Acme"
        assert original.id == 5

    def test_pydantic_key_access(self):
        """Pydantic models are bound by field name."""
        binding = EntityBinding(Product, primary_key="sku", auto_generate_key=False)
        product = Product(sku="A-1", price=2.5)

        assert binding.get_key(product) == "A-1"
        assert binding.with_key(product, "B-2").sku == "B-2"
        assert product.sku == "A-1"

    def test_dict_key_access(self):
        """Dict records are keyed by the primary key name."""
        binding = EntityBinding(dict, primary_key="id")
        record = {"id": 3, "name": "x"}

        assert binding.get_key(record) == 3
        assert binding.with_key(record, 9) == {"id": 9, "name": "x"}
        assert record["id"] == 3

    def test_has_zero_key(self):
        """Zero and None mean no key assigned yet."""
        binding = EntityBinding(dict)

        assert binding.has_zero_key({"id": 0})
        assert binding.has_zero_key({})
        assert not binding.has_zero_key({"id": 1})

    def test_missing_key_field_rejected(self):
        """Binding fails at configuration time for unknown key fields."""
        with pytest.raises(ConfigurationError) as exc_info:
            EntityBinding(Customer, primary_key="customer_id")

        assert exc_info.value.setting == "primary_key"

    def test_unsupported_type_rejected(self):
        """Plain classes cannot be bound."""

        class Plain:
            id = 0

        with pytest.raises(ConfigurationError):
            EntityBinding(Plain)

    def test_record_round_trip(self):
        """Records are JSON dicts and convert back to entities."""
        binding = EntityBinding(Customer)

        record = binding.to_record(Customer(id=1, name="Acme"))

        assert record == {"id": 1, "name": "Acme"}
        assert binding.from_record(record) == Customer(id=1, name="Acme")

    def test_invalid_record_raises_validation_error(self):
        """Records that do not fit the type raise ValidationError."""
        binding = EntityBinding(Product, primary_key="sku")

        with pytest.raises(ValidationError) as exc_info:
            binding.from_record({"price": "not a number"})

        assert exc_info.value.entity_name == "Product"
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert len(exc_info.value.errors) == 2
