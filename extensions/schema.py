"""
Declarative field-schema value objects.

The same schema shape is shared by page types, panel types and
extension-declared settings. Both the current form (``id``) and the older
manifest form (``key`` with top-level ``min``/``max``) are accepted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import SchemaError

FIELD_TYPES = ("text", "textarea", "select", "number", "checkbox", "color", "range")


@dataclass(frozen=True)
class FieldOption:
    """One choice of a select field."""
    value: Any
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}


@dataclass(frozen=True)
class FieldValidation:
    """Constraints checked after type coercion."""
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    step: Optional[float] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "pattern": self.pattern,
            "min": self.min,
            "max": self.max,
            "min_length": self.min_length,
            "max_length": self.max_length,
            "step": self.step,
            "message": self.message,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class FieldSchema:
    """A single configurable field."""
    id: str
    type: str
    label: str
    required: bool = False
    validation: Optional[FieldValidation] = None
    options: Tuple[FieldOption, ...] = field(default_factory=tuple)

    # Presentation hints
    placeholder: Optional[str] = None
    help: Optional[str] = None
    default: Any = None
    rows: Optional[int] = None

    @property
    def is_known_type(self) -> bool:
        return self.type in FIELD_TYPES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "required": self.required,
        }
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        if self.options:
            data["options"] = [o.to_dict() for o in self.options]
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        if self.help is not None:
            data["help"] = self.help
        if self.default is not None:
            data["default"] = self.default
        if self.rows is not None:
            data["rows"] = self.rows
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldSchema":
        """
        Build a FieldSchema from manifest/JSON data.

        Args:
            data: Field mapping

        Returns:
            Parsed FieldSchema

        Raises:
            SchemaError: If the field has no id or type
        """
        if not isinstance(data, dict):
            raise SchemaError(f"Field definition must be an object, got {type(data).__name__}")

        field_id = data.get("id") or data.get("key")
        if not field_id or not isinstance(field_id, str):
            raise SchemaError("Field definition is missing 'id'")

        field_type = data.get("type")
        if not field_type or not isinstance(field_type, str):
            raise SchemaError(f"Field '{field_id}' is missing 'type'")

        required = data.get("required", False)
        if not isinstance(required, bool):
            raise SchemaError(f"Field '{field_id}': 'required' must be true or false")

        return cls(
            id=field_id,
            type=field_type,
            label=str(data.get("label") or field_id),
            required=required,
            validation=_parse_validation(field_id, data),
            options=_parse_options(field_id, data.get("options") or []),
            placeholder=data.get("placeholder"),
            help=data.get("help"),
            default=data.get("default"),
            rows=data.get("rows"),
        )


def _parse_validation(field_id: str, data: Dict[str, Any]) -> Optional[FieldValidation]:
    raw = data.get("validation") or {}
    if not isinstance(raw, dict):
        raise SchemaError(f"Field '{field_id}': 'validation' must be an object")

    merged = dict(raw)
    # Older manifests put numeric bounds directly on the field
    for key in ("min", "max", "step"):
        if key in data and key not in merged:
            merged[key] = data[key]

    if not merged:
        return None

    try:
        return FieldValidation(
            pattern=merged.get("pattern"),
            min=_optional_number(merged.get("min")),
            max=_optional_number(merged.get("max")),
            min_length=_optional_int(merged.get("min_length", merged.get("minLength"))),
            max_length=_optional_int(merged.get("max_length", merged.get("maxLength"))),
            step=_optional_number(merged.get("step")),
            message=merged.get("message"),
        )
    except (TypeError, ValueError) as e:
        raise SchemaError(f"Field '{field_id}': invalid validation rule: {e}") from e


def _parse_options(field_id: str, raw: Any) -> Tuple[FieldOption, ...]:
    if not isinstance(raw, list):
        raise SchemaError(f"Field '{field_id}': 'options' must be a list")

    options: List[FieldOption] = []
    for item in raw:
        if isinstance(item, dict):
            if "value" not in item:
                raise SchemaError(f"Field '{field_id}': option is missing 'value'")
            value = item["value"]
            options.append(FieldOption(value=value, label=str(item.get("label", value))))
        else:
            options.append(FieldOption(value=item, label=str(item)))
    return tuple(options)


def _optional_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def parse_schema(raw: Any) -> Tuple[FieldSchema, ...]:
    """
    Parse a field schema from manifest data.

    Accepts a list of fields, a ``{"fields": [...]}`` wrapper, FieldSchema
    instances or None.

    Raises:
        SchemaError: If the schema is malformed or field ids repeat
    """
    if raw is None:
        return ()
    if isinstance(raw, dict):
        raw = raw.get("fields", [])
    if not isinstance(raw, (list, tuple)):
        raise SchemaError("Config schema must be a list of fields")

    fields: List[FieldSchema] = []
    seen = set()
    for item in raw:
        schema = item if isinstance(item, FieldSchema) else FieldSchema.from_dict(item)
        if schema.id in seen:
            raise SchemaError(f"Duplicate field id '{schema.id}' in config schema")
        seen.add(schema.id)
        fields.append(schema)
    return tuple(fields)
