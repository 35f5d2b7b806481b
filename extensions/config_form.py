"""
Config-schema renderer.

Turns FieldSchema definitions into plain-data controls plus change handlers,
and validates values against them. Validation runs in a fixed order:
required check, then type coercion, then pattern, range and length checks.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .schema import FieldSchema

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
RANGE_DEFAULT_MIN = 0.0
RANGE_DEFAULT_MAX = 100.0

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}

WIDGETS = {
    "text": "input",
    "textarea": "textarea",
    "select": "select",
    "number": "number",
    "checkbox": "checkbox",
    "color": "color",
    "range": "slider",
}


class CoercionError(ValueError):
    """A value cannot be converted to the field's type."""

    pass


@dataclass
class Control:
    """Renderable description of one form control."""
    field_id: str
    widget: str
    label: str
    value: Any = None
    required: bool = False
    options: List[Dict[str, Any]] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_id": self.field_id,
            "widget": self.widget,
            "label": self.label,
            "value": self.value,
            "required": self.required,
            "options": list(self.options),
            "attrs": dict(self.attrs),
            "error": self.error,
        }


@dataclass(frozen=True)
class FieldChange:
    """Result of feeding a raw input value through a control's handler."""
    value: Any
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RenderedField:
    control: Control
    on_change: Callable[[Any], FieldChange]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        raise CoercionError("must be a number")
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            value = float(text)
        except ValueError:
            raise CoercionError("must be a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CoercionError("must be a finite number")
        return value
    raise CoercionError("must be a number")


def coerce(schema: FieldSchema, value: Any) -> Any:
    """
    Convert a raw input value to the field's type.

    Empty input becomes None. Unknown field types pass values through.

    Raises:
        CoercionError: If the value cannot be converted
    """
    if _is_empty(value) and schema.type != "checkbox":
        return None

    if schema.type in ("text", "textarea"):
        if isinstance(value, (dict, list)):
            raise CoercionError("must be text")
        return str(value)

    if schema.type in ("number", "range"):
        return _as_number(value)

    if schema.type == "checkbox":
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
            return True
        if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
            return False
        raise CoercionError("must be true or false")

    if schema.type == "select":
        for option in schema.options:
            if option.value == value or str(option.value) == str(value):
                return option.value
        raise CoercionError(f"'{value}' is not one of the allowed options")

    if schema.type == "color":
        text = str(value).strip()
        if not COLOR_PATTERN.match(text):
            raise CoercionError("must be a hex color like #ff8800")
        return text.lower()

    return value


def _check_constraints(schema: FieldSchema, value: Any) -> Optional[str]:
    rules = schema.validation
    label = schema.label

    if schema.type == "range":
        low = rules.min if rules is not None and rules.min is not None else RANGE_DEFAULT_MIN
        high = rules.max if rules is not None and rules.max is not None else RANGE_DEFAULT_MAX
        if value < low or value > high:
            return rules.message if rules is not None and rules.message else (
                f"{label} must be between {_fmt(low)} and {_fmt(high)}"
            )

    if rules is None:
        return None

    if isinstance(value, str):
        if rules.pattern is not None:
            try:
                matched = re.fullmatch(rules.pattern, value) is not None
            except re.error:
                logger.warning(f"Invalid pattern for field '{schema.id}': {rules.pattern!r}")
                matched = True
            if not matched:
                return rules.message or f"{label} has an invalid format"
        if rules.min_length is not None and len(value) < rules.min_length:
            return rules.message or f"{label} must be at least {rules.min_length} characters"
        if rules.max_length is not None and len(value) > rules.max_length:
            return rules.message or f"{label} must be at most {rules.max_length} characters"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if rules.min is not None and value < rules.min:
            return rules.message or f"{label} must be at least {_fmt(rules.min)}"
        if rules.max is not None and value > rules.max:
            return rules.message or f"{label} must be at most {_fmt(rules.max)}"

    return None


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def _validate(schema: FieldSchema, value: Any) -> Tuple[Any, Optional[str]]:
    if schema.required and _is_empty(value):
        return None, f"{schema.label} is required"

    if not schema.is_known_type:
        return value, None

    try:
        coerced = coerce(schema, value)
    except CoercionError as e:
        return value, f"{schema.label} {e}"

    if coerced is None:
        return None, None

    return coerced, _check_constraints(schema, coerced)


def validate(schema: FieldSchema, value: Any) -> Optional[str]:
    """
    Validate a value against a field.

    Returns:
        Error message, or None if the value is acceptable
    """
    return _validate(schema, value)[1]


def render_field(schema: FieldSchema, current_value: Any = None) -> RenderedField:
    """
    Build the control for a field.

    An unknown field type still yields a visible control (widget
    ``unknown``) carrying an error, so nothing is silently dropped.

    Args:
        schema: Field definition
        current_value: Stored value, or None to use the field default

    Returns:
        RenderedField with the control and its change handler
    """
    value = current_value if current_value is not None else schema.default

    attrs: Dict[str, Any] = {}
    if schema.placeholder is not None:
        attrs["placeholder"] = schema.placeholder
    if schema.help is not None:
        attrs["help"] = schema.help
    if schema.type == "textarea":
        attrs["rows"] = schema.rows or 4

    rules = schema.validation
    if schema.type in ("number", "range"):
        if rules is not None:
            for key in ("min", "max", "step"):
                if getattr(rules, key) is not None:
                    attrs[key] = getattr(rules, key)
        if schema.type == "range":
            attrs.setdefault("min", RANGE_DEFAULT_MIN)
            attrs.setdefault("max", RANGE_DEFAULT_MAX)
    if schema.type in ("text", "textarea") and rules is not None:
        if rules.max_length is not None:
            attrs["max_length"] = rules.max_length
        if rules.pattern is not None:
            attrs["pattern"] = rules.pattern

    if schema.is_known_type:
        control = Control(
            field_id=schema.id,
            widget=WIDGETS[schema.type],
            label=schema.label,
            value=value,
            required=schema.required,
            options=[o.to_dict() for o in schema.options],
            attrs=attrs,
        )
    else:
        control = Control(
            field_id=schema.id,
            widget="unknown",
            label=schema.label,
            value=value,
            required=schema.required,
            attrs={"type": schema.type},
            error=f"Unknown field type '{schema.type}'",
        )

    def on_change(raw: Any) -> FieldChange:
        coerced, error = _validate(schema, raw)
        return FieldChange(value=coerced, error=error)

    return RenderedField(control=control, on_change=on_change)


def render_form(fields: Sequence[FieldSchema], config: Optional[Dict[str, Any]] = None) -> List[RenderedField]:
    """Render every field of a schema against a stored config."""
    config = config or {}
    return [render_field(f, config.get(f.id)) for f in fields]


def validate_config(fields: Sequence[FieldSchema], config: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Validate a whole config mapping.

    Returns:
        Mapping of field id to error message; empty when valid
    """
    config = config or {}
    errors: Dict[str, str] = {}
    for f in fields:
        error = validate(f, config.get(f.id))
        if error is not None:
            errors[f.id] = error
    return errors


def apply_defaults(
    fields: Sequence[FieldSchema],
    config: Optional[Dict[str, Any]],
    default_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Fill missing keys: stored config first, then ``default_config``, then
    per-field defaults.
    """
    merged: Dict[str, Any] = {}
    for f in fields:
        if f.default is not None:
            merged[f.id] = f.default
    merged.update(default_config or {})
    merged.update({k: v for k, v in (config or {}).items() if v is not None})
    return merged
