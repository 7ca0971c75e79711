"""Field-level validation that reports every violation at once."""

import re
from decimal import Decimal
from typing import Any

from retail_pos.core.exceptions import ValidationException

BARCODE_PATTERN = re.compile(r"^[0-9A-Za-z\-_]+$")


class FieldValidator:
    """
    Collects field violations and raises a single ValidationException.

    Usage:
        validator = FieldValidator()
        validator.required_text("name", data.name, max_length=255)
        validator.non_negative("price", data.price)
        validator.raise_if_invalid()
    """

    def __init__(self):
        self.errors: list[str] = []

    def add(self, message: str) -> None:
        self.errors.append(message)

    def required_text(self, field: str, value: str | None, max_length: int) -> None:
        if value is None or not value.strip():
            self.add(f"{field} is required and cannot be empty")
            return
        self.max_length(field, value, max_length)

    def max_length(self, field: str, value: str | None, max_length: int) -> None:
        if value is not None and len(value) > max_length:
            self.add(f"{field} cannot exceed {max_length} characters")

    def non_negative(self, field: str, value: int | float | Decimal | None) -> None:
        if value is not None and value < 0:
            self.add(f"{field} cannot be negative")

    def positive(self, field: str, value: int | float | Decimal | None) -> None:
        if value is None or value <= 0:
            self.add(f"{field} must be greater than 0")

    def integer(self, field: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            self.add(f"{field} must be an integer")

    def pattern(self, field: str, value: str | None, regex: re.Pattern, message: str) -> None:
        if value and not regex.match(value):
            self.add(f"{field} {message}")

    def barcode(self, field: str, value: str | None) -> None:
        self.required_text(field, value, max_length=100)
        self.pattern(
            field,
            value,
            BARCODE_PATTERN,
            "can only contain alphanumeric characters, hyphens, and underscores",
        )

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationException(self.errors)
