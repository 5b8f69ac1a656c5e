from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from quart import jsonify

T = TypeVar("T", bound=BaseModel)

Errors = List[Dict[str, str]]


def parse_body(schema: Type[T], data: Any) -> Tuple[Optional[T], Optional[Errors]]:
    """Validate ``data`` against ``schema``.

    Returns ``(model, None)`` on success and ``(None, errors)`` otherwise, where
    each error names the offending field.
    """
    try:
        return schema.model_validate(data if data is not None else {}), None
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return None, errors


def invalid_response(errors: Errors, message: str = "Données invalides"):
    return jsonify({"success": False, "message": message, "errors": errors}), 400
