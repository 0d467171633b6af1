# spectra/mock_data.py
"""
Mock Data Generator

Synthetic request payloads from JSON schemas or named data types, backed by
Faker. Seedable for reproducible payloads.
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Dict, Optional

from faker import Faker

logger = logging.getLogger(__name__)

MAX_ARRAY_ITEMS = 10
MAX_STRING_LENGTH = 100

DEPARTMENTS = [
    "Books", "Electronics", "Garden", "Grocery", "Health",
    "Home", "Music", "Outdoors", "Sports", "Toys",
]


def _bound(schema: Dict[str, Any], key: str, default: int) -> int:
    """Schema size keyword; an explicit 0 is kept."""
    value = schema.get(key)
    return default if value is None else max(int(value), 0)


class MockDataGenerator:
    """Generate realistic test data using Faker"""

    def __init__(self, seed: Optional[int] = None, locale: str = "en_US"):
        self.faker = Faker(locale)
        if seed is not None:
            self.faker.seed_instance(seed)

    @property
    def random(self):
        return self.faker.random

    # ==================== Schema-driven ====================

    def generate_from_schema(self, schema: Optional[Dict[str, Any]]) -> Any:
        """Generate a value that satisfies a (simple) JSON schema."""
        if not schema or not isinstance(schema, dict):
            return None

        schema_type = schema.get("type")
        if isinstance(schema_type, list):
            schema_type = next((t for t in schema_type if t != "null"), "null")

        if schema_type == "object":
            return self._generate_object(schema)
        if schema_type == "array":
            return self._generate_array(schema)
        if schema_type == "string":
            return self._generate_string(schema)
        if schema_type in ("number", "integer"):
            return self._generate_number(schema, schema_type)
        if schema_type == "boolean":
            return self.faker.pybool()
        return None

    def _generate_object(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        return {
            name: self.generate_from_schema(prop)
            for name, prop in (schema.get("properties") or {}).items()
        }

    def _generate_array(self, schema: Dict[str, Any]) -> list:
        items = schema.get("items")
        if not items:
            return []
        min_items = _bound(schema, "minItems", 1)
        max_items = _bound(schema, "maxItems", 5)
        if max_items < 1:
            return []
        count = min(self.random.randint(min_items, max(min_items, max_items)), MAX_ARRAY_ITEMS)
        return [self.generate_from_schema(items) for _ in range(count)]

    def _generate_string(self, schema: Dict[str, Any]) -> str:
        fmt = schema.get("format")
        formats = {
            "email": self.faker.email,
            "uri": self.faker.url,
            "url": self.faker.url,
            "date": lambda: self.faker.date_between(start_date="-1y").isoformat(),
            "date-time": lambda: self.faker.date_time_between(start_date="-1y", tzinfo=timezone.utc).isoformat(),
            "uuid": self.faker.uuid4,
            "hostname": self.faker.domain_name,
            "ipv4": self.faker.ipv4,
            "ipv6": self.faker.ipv6,
            "phone": self.faker.phone_number,
        }
        if fmt in formats:
            return str(formats[fmt]())

        if schema.get("enum"):
            return self.random.choice(schema["enum"])

        pattern = schema.get("pattern")
        if pattern:
            # Only common shapes; arbitrary regex generation is out of scope
            if "\\d" in pattern:
                return self._alphanumeric(10)
            return " ".join(self.faker.words(3))

        min_length = _bound(schema, "minLength", 5)
        max_length = _bound(schema, "maxLength", 20)
        length = min(self.random.randint(min_length, max(min_length, max_length)), MAX_STRING_LENGTH)
        return self._alphanumeric(length)

    def _generate_number(self, schema: Dict[str, Any], schema_type: str = "number"):
        if schema.get("enum"):
            return self.random.choice(schema["enum"])

        is_integer = schema_type == "integer"
        minimum = schema.get("minimum", 1 if is_integer else 0.1)
        maximum = schema.get("maximum", 1000 if is_integer else 1000.0)
        if is_integer:
            return self.random.randint(int(minimum), int(maximum))
        return self.random.uniform(float(minimum), float(maximum))

    def _alphanumeric(self, length: int) -> str:
        return self.faker.pystr_format(string_format="?" * length, letters="abcdefghijklmnopqrstuvwxyz0123456789")

    # ==================== Named data types ====================

    def generate(self, data_type: str, **kwargs) -> Any:
        """Generate test data by type"""
        generators = {
            "email": lambda: self.faker.email(),
            "name": lambda: self.faker.name(),
            "first_name": lambda: self.faker.first_name(),
            "last_name": lambda: self.faker.last_name(),
            "phone": lambda: self.faker.phone_number(),
            "address": lambda: self.faker.address(),
            "city": lambda: self.faker.city(),
            "country": lambda: self.faker.country(),
            "company": lambda: self.faker.company(),
            "url": lambda: self.faker.url(),
            "uuid": lambda: self.faker.uuid4(),
            "ipv4": lambda: self.faker.ipv4(),
            "user_agent": lambda: self.faker.user_agent(),
            "date": lambda: self.faker.date(),
            "datetime": lambda: self.faker.iso8601(),
            "text": lambda: self.faker.text(max_nb_chars=kwargs.get("length", 200)),
            "number": lambda: self.faker.random_int(
                min=kwargs.get("min", 1),
                max=kwargs.get("max", 1000)
            ),
            "person": self.generate_person,
            "product": self.generate_product,
        }

        generator = generators.get(data_type)
        if generator is None:
            logger.debug(f"Unknown data type: {data_type}")
            return None
        return generator()

    def generate_person(self) -> Dict[str, Any]:
        first_name = self.faker.first_name()
        last_name = self.faker.last_name()
        return {
            "id": self.faker.uuid4(),
            "firstName": first_name,
            "lastName": last_name,
            "fullName": f"{first_name} {last_name}",
            "email": f"{first_name}.{last_name}@{self.faker.free_email_domain()}".lower(),
            "age": self.faker.random_int(min=18, max=80),
            "address": {
                "street": self.faker.street_address(),
                "city": self.faker.city(),
                "state": self.faker.state(),
                "zipCode": self.faker.postcode(),
                "country": self.faker.country(),
            },
            "phone": self.faker.phone_number(),
            "username": self.faker.user_name(),
            "avatar": self.faker.image_url(),
            "createdAt": self.faker.date_time_between(start_date="-1y", tzinfo=timezone.utc).isoformat(),
        }

    def generate_product(self) -> Dict[str, Any]:
        return {
            "id": self.faker.uuid4(),
            "name": f"{self.faker.color_name()} {self.faker.word().title()}",
            "description": self.faker.sentence(nb_words=12),
            "price": round(self.random.uniform(1, 1000), 2),
            "department": self.random.choice(DEPARTMENTS),
            "inStock": self.faker.pybool(),
            "inventory": self.faker.random_int(min=0, max=100),
            "image": self.faker.image_url(),
            "createdAt": self.faker.date_time_between(start_date="-1y", tzinfo=timezone.utc).isoformat(),
        }
