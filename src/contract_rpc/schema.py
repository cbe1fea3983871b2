"""
Schema validation adapter.

Contracts declare their input and output shapes as anything pydantic can
validate (usually a BaseModel subclass). This module wraps such a type once in
a Schema so the dispatcher and the client validate and serialize identically.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter, ValidationError


class SchemaValidationError(Exception):
    """
    Raised when a value does not match a schema.

    Attributes:
        schema_name: Name of the schema that rejected the value.
        issues: Structured issue list (loc, msg, type) from pydantic.
    """

    def __init__(self, schema_name: str, issues: list[dict[str, Any]]) -> None:
        super().__init__(f"Value does not match schema {schema_name}")
        self.schema_name = schema_name
        self.issues = issues


class Schema:
    """
    A validated shape backed by a pydantic TypeAdapter.

    Example:
        >>> schema = Schema(GreetingInput)
        >>> value = schema.validate({"name": "Ada"})
        >>> schema.dump(value)
        {'name': 'Ada'}
    """

    def __init__(self, annotation: Any) -> None:
        if isinstance(annotation, Schema):
            annotation = annotation.annotation
        self.annotation = annotation
        self._adapter: TypeAdapter[Any] = TypeAdapter(annotation)

    @property
    def name(self) -> str:
        """Return a readable name for the schema."""
        return getattr(self.annotation, "__name__", repr(self.annotation))

    def validate(self, value: Any) -> Any:
        """
        Validate a raw (JSON-decoded) value.

        Args:
            value: The value to validate. Instances of the schema's own model
                class pass through unchanged.

        Returns:
            The typed value.

        Raises:
            SchemaValidationError: If the value does not match.
        """
        try:
            return self._adapter.validate_python(value)
        except ValidationError as e:
            raise SchemaValidationError(self.name, _issues(e)) from e

    def dump(self, value: Any, *, exclude_unset: bool = True) -> Any:
        """
        Serialize a typed value to its JSON-compatible wire form.

        By default fields a model instance did not set explicitly are left
        out, so two inputs built from equal mappings serialize to equal
        payloads.
        """
        return self._adapter.dump_python(value, mode="json", exclude_unset=exclude_unset)

    def json_schema(self) -> dict[str, Any]:
        """Return the JSON Schema describing this shape."""
        return self._adapter.json_schema()

    def __repr__(self) -> str:
        return f"Schema({self.name})"


def _issues(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in item["loc"]],
            "msg": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]
