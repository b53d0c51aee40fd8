"""
Request validation - turns pydantic errors into one ValidationError listing every violation.
"""

import re
from typing import Any, Dict, Iterable, List, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from util.logging import logger

from ..core.errors import ValidationError

BODY_ERROR = "Validation Error"
QUERY_ERROR = "Query Validation Error"

# date_range[start] or date_range.start
_NESTED_KEY = re.compile(r"^(\w+)(?:\[(\w+)\]|\.(\w+))$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_error(error: Dict[str, Any]) -> str:
    """Render one pydantic error as 'field.path: message'."""
    path = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{path}: {message}" if path else message


def request_violations(errors: Iterable[Dict[str, Any]]) -> List[str]:
    """Render FastAPI request errors with the leading 'body' location dropped."""
    violations = []
    for error in errors:
        loc = tuple(error.get("loc", ()))
        if error.get("type") == "json_invalid":
            reason = (error.get("ctx") or {}).get("error", error.get("msg"))
            violations.append(f"body: invalid JSON ({reason})")
            continue
        if loc[:1] == ("body",) and len(loc) > 1:
            loc = loc[1:]
        violations.append(format_error({**error, "loc": loc}))
    return violations


def validate(schema: Type[ModelT], payload: Any, operation: str, error: str = BODY_ERROR) -> ModelT:
    """Validate payload against schema or raise ValidationError with all violations."""
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        violations = [format_error(err) for err in e.errors()]
        logger.log_validation_error(operation, violations, payload if isinstance(payload, dict) else None)
        raise ValidationError(violations, error=error) from e


def parse_query_params(items: Iterable[Tuple[str, str]], list_fields: Iterable[str] = ()) -> Dict[str, Any]:
    """Fold raw query-string pairs into a dict, nesting bracketed or dotted keys.

    Keys named in list_fields (or sent as key[]) collect every value;
    otherwise the last occurrence wins.
    """
    list_fields = set(list_fields)
    parsed: Dict[str, Any] = {}
    for key, value in items:
        match = _NESTED_KEY.match(key)
        if match:
            parent, child = match.group(1), match.group(2) or match.group(3)
            nested = parsed.setdefault(parent, {})
            if isinstance(nested, dict):
                nested[child] = value
            continue

        if key.endswith("[]"):
            key = key[:-2]
            list_fields.add(key)

        if key in list_fields:
            existing = parsed.setdefault(key, [])
            if isinstance(existing, list):
                existing.append(value)
        else:
            parsed[key] = value
    return parsed
