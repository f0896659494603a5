from typing import Any

from ..errors import MissingField


def require_value(value: Any, field: str) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingField(field)
    return value
