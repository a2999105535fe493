from flask import request
from pydantic import BaseModel

from ..http import ValidationFailed


def parse(schema: type[BaseModel], payload: dict | None = None):
    """Validate the JSON body (or ``payload``) against ``schema``."""
    if payload is None:
        payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationFailed("Missing or invalid JSON payload.")
    return schema.model_validate(payload)


def str_arg(name: str) -> str:
    value = (request.args.get(name) or "").strip()
    if not value:
        raise ValidationFailed(f"Missing '{name}' query parameter.")
    return value
