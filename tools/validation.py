"""
Schema Validation
-----------------
Validates tool arguments against a JSON-Schema-like input schema and
checks that tool schemas themselves are well formed.

Rules:
- Never raises; all problems are reported as issues
- Every issue carries a dotted/indexed field path
- A field that fails its type check gets no further checks
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import math
import re
from urllib.parse import urlparse


VALID_TYPES = ("string", "number", "integer", "boolean", "array", "object")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?$")
MARKUP_RE = re.compile(r"<[^>]*>")

_logger = logging.getLogger("bridge.tools.validation")


@dataclass
class ValidationIssue:
    """A single validation failure."""
    field: str
    message: str
    code: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"field": self.field, "message": self.message, "code": self.code}
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass
class ValidationWarning:
    """Non-fatal schema remark."""
    field: str
    message: str
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of validating input or a schema."""
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)

    @classmethod
    def from_issues(
        cls,
        errors: List[ValidationIssue],
        warnings: Optional[List[ValidationWarning]] = None
    ) -> "ValidationResult":
        return cls(valid=not errors, errors=errors, warnings=warnings or [])


# =============================================================================
# Input validation
# =============================================================================

def validate_input(value: Any, schema: Dict[str, Any]) -> ValidationResult:
    """
    Validate a tool argument mapping against its input schema.

    Returns a ValidationResult listing every issue found.
    """
    try:
        if not isinstance(value, dict):
            return ValidationResult.from_issues([
                ValidationIssue("", "Input must be an object", "INVALID_TYPE", value)
            ])

        errors: List[ValidationIssue] = []
        properties = schema.get("properties") or {}
        required = schema.get("required") or []

        for name in required:
            if value.get(name) is None:
                errors.append(ValidationIssue(
                    name, f"Required field '{name}' is missing", "MISSING_REQUIRED_FIELD"
                ))

        if not schema.get("additionalProperties"):
            for name in value:
                if name not in properties:
                    errors.append(ValidationIssue(
                        name, f"Unexpected field '{name}'", "UNEXPECTED_FIELD", value[name]
                    ))

        for name, prop_schema in properties.items():
            if _present(value, name, required):
                errors.extend(_validate_value(value[name], prop_schema, name))

        return ValidationResult.from_issues(errors)
    except Exception as e:
        _logger.warning(f"Validation raised unexpectedly: {e}")
        return ValidationResult.from_issues([
            ValidationIssue("", f"Validation error: {e}", "VALIDATION_ERROR")
        ])


def _validate_value(value: Any, schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    expected = schema.get("type")
    if expected and not _is_type(value, expected):
        return [ValidationIssue(
            path,
            f"Expected {expected}, got {_type_name(value)}",
            "INVALID_TYPE",
            value,
        )]

    errors = _validate_enum(value, schema, path)
    if expected == "string":
        return errors + _validate_string(value, schema, path)
    if expected in ("number", "integer"):
        return errors + _validate_number(value, schema, path)
    if expected == "array":
        return errors + _validate_array(value, schema, path)
    if expected == "object":
        return errors + _validate_object(value, schema, path)
    return errors


def _present(value: Dict[str, Any], name: str, required: List[str]) -> bool:
    # A required field set to None is already reported as missing
    if name not in value:
        return False
    return value[name] is not None or name not in required


def _is_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "number":
        return _is_number(value)
    if expected == "integer":
        return _is_number(value) and float(value).is_integer()
    if expected == "array":
        return isinstance(value, (list, tuple))
    if expected == "object":
        return isinstance(value, dict)
    return True


def _is_number(value: Any) -> bool:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _validate_enum(value: Any, schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    allowed = schema.get("enum")
    if allowed is not None and value not in allowed:
        return [ValidationIssue(
            path,
            f"Value must be one of: {', '.join(str(a) for a in allowed)}",
            "INVALID_ENUM_VALUE",
            value,
        )]
    return []


def _validate_string(value: str, schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    errors: List[ValidationIssue] = []

    pattern = schema.get("pattern")
    if pattern is not None:
        try:
            if not re.search(pattern, value):
                errors.append(ValidationIssue(
                    path, f"Value does not match pattern: {pattern}", "PATTERN_MISMATCH", value
                ))
        except re.error:
            errors.append(ValidationIssue(
                path, f"Invalid pattern in schema: {pattern}", "INVALID_PATTERN", value
            ))

    fmt = schema.get("format")
    if fmt == "email" and not EMAIL_RE.match(value):
        errors.append(ValidationIssue(path, "Invalid email format", "INVALID_EMAIL", value))
    elif fmt == "uri" and not _is_uri(value):
        errors.append(ValidationIssue(path, "Invalid URI format", "INVALID_URI", value))
    elif fmt == "date" and not DATE_RE.match(value):
        errors.append(ValidationIssue(
            path, "Invalid date format (expected YYYY-MM-DD)", "INVALID_DATE", value
        ))
    elif fmt == "date-time" and not DATE_TIME_RE.match(value):
        errors.append(ValidationIssue(
            path, "Invalid date-time format (expected ISO 8601)", "INVALID_DATE_TIME", value
        ))

    return errors


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _validate_number(value: float, schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    errors: List[ValidationIssue] = []

    minimum = schema.get("minimum")
    if minimum is not None and value < minimum:
        errors.append(ValidationIssue(
            path, f"Value must be >= {minimum}", "BELOW_MINIMUM", value
        ))

    maximum = schema.get("maximum")
    if maximum is not None and value > maximum:
        errors.append(ValidationIssue(
            path, f"Value must be <= {maximum}", "ABOVE_MAXIMUM", value
        ))

    return errors


def _validate_array(value: List[Any], schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    items = schema.get("items")
    if not items:
        return []

    errors: List[ValidationIssue] = []
    for index, item in enumerate(value):
        errors.extend(_validate_value(item, items, f"{path}[{index}]"))
    return errors


def _validate_object(value: Dict[str, Any], schema: Dict[str, Any], path: str) -> List[ValidationIssue]:
    errors: List[ValidationIssue] = []

    required = schema.get("required") or []
    for name in required:
        if value.get(name) is None:
            errors.append(ValidationIssue(
                f"{path}.{name}",
                f"Required field '{path}.{name}' is missing",
                "MISSING_REQUIRED_FIELD",
            ))

    for name, prop_schema in (schema.get("properties") or {}).items():
        if _present(value, name, required):
            errors.extend(_validate_value(value[name], prop_schema, f"{path}.{name}"))

    return errors


# =============================================================================
# Schema well-formedness
# =============================================================================

def validate_schema(schema: Any) -> ValidationResult:
    """Check a tool input schema before it is accepted into the catalog."""
    errors: List[ValidationIssue] = []
    warnings: List[ValidationWarning] = []

    if not isinstance(schema, dict):
        errors.append(ValidationIssue("", "Schema must be an object", "INVALID_SCHEMA"))
        return ValidationResult.from_issues(errors)

    if schema.get("type") != "object":
        errors.append(ValidationIssue(
            "type", "Schema type must be 'object'", "INVALID_SCHEMA_TYPE", schema.get("type")
        ))

    properties = schema.get("properties")
    if not isinstance(properties, dict):
        errors.append(ValidationIssue(
            "properties", "Schema must define properties", "MISSING_PROPERTIES"
        ))
        properties = {}

    for name, prop_schema in properties.items():
        _check_property(prop_schema, name, errors, warnings)

    _check_required(schema.get("required"), properties, "", errors)

    return ValidationResult.from_issues(errors, warnings)


def _check_property(
    prop: Any,
    path: str,
    errors: List[ValidationIssue],
    warnings: List[ValidationWarning]
) -> None:
    if not isinstance(prop, dict):
        errors.append(ValidationIssue(path, "Property schema must be an object", "INVALID_SCHEMA"))
        return

    prop_type = prop.get("type")
    if prop_type not in VALID_TYPES:
        errors.append(ValidationIssue(
            path,
            f"Invalid property type: {prop_type}. Must be one of: {', '.join(VALID_TYPES)}",
            "INVALID_PROPERTY_TYPE",
            prop_type,
        ))

    if "enum" in prop and not isinstance(prop["enum"], list):
        errors.append(ValidationIssue(path, "Enum must be an array", "INVALID_ENUM", prop["enum"]))

    if "pattern" in prop:
        pattern = prop["pattern"]
        if not isinstance(pattern, str):
            errors.append(ValidationIssue(path, "Pattern must be a string", "INVALID_PATTERN", pattern))
        else:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(ValidationIssue(
                    path, f"Invalid regex pattern: {e}", "INVALID_PATTERN", pattern
                ))

    if "minimum" in prop and not _is_number(prop["minimum"]):
        errors.append(ValidationIssue(path, "Minimum must be a number", "INVALID_MINIMUM", prop["minimum"]))
    if "maximum" in prop and not _is_number(prop["maximum"]):
        errors.append(ValidationIssue(path, "Maximum must be a number", "INVALID_MAXIMUM", prop["maximum"]))

    if not prop.get("description"):
        warnings.append(ValidationWarning(
            path,
            "Property has no description",
            "Add a description to help callers understand the parameter",
        ))

    if prop_type == "array" and "items" in prop:
        _check_property(prop["items"], f"{path}[]", errors, warnings)

    if prop_type == "object" and "properties" in prop:
        nested = prop["properties"]
        if not isinstance(nested, dict):
            errors.append(ValidationIssue(
                f"{path}.properties", "Properties must be an object", "MISSING_PROPERTIES"
            ))
            nested = {}
        for name, sub in nested.items():
            _check_property(sub, f"{path}.{name}", errors, warnings)
        _check_required(prop.get("required"), nested, path, errors)


def _check_required(
    required: Any,
    properties: Dict[str, Any],
    path: str,
    errors: List[ValidationIssue]
) -> None:
    if required is None:
        return

    req_path = f"{path}.required" if path else "required"
    if not isinstance(required, list):
        errors.append(ValidationIssue(req_path, "Required must be an array", "INVALID_REQUIRED_FIELD", required))
        return

    for name in required:
        if not isinstance(name, str):
            errors.append(ValidationIssue(
                req_path, f"Required field name must be a string: {name!r}", "INVALID_REQUIRED_FIELD", name
            ))
        elif name not in properties:
            errors.append(ValidationIssue(
                req_path, f"Required field '{name}' is not defined in properties",
                "UNDEFINED_REQUIRED_FIELD", name
            ))


# =============================================================================
# Sanitization
# =============================================================================

def sanitize_tool_input(value: Any) -> Any:
    """Strip markup tags from every string in a nested structure."""
    if isinstance(value, str):
        return MARKUP_RE.sub("", value).strip()
    if isinstance(value, list):
        return [sanitize_tool_input(item) for item in value]
    if isinstance(value, dict):
        return {
            sanitize_tool_input(k) if isinstance(k, str) else k: sanitize_tool_input(v)
            for k, v in value.items()
        }
    return value
