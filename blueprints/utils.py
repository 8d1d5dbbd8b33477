"""Request parsing helpers shared by the JSON blueprints."""

from bracket_engine.errors import ValidationError


def int_field(payload: dict, key: str, required: bool = True):
    """Read an integer field from a JSON payload."""
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError('Missing required fields')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be a number')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number') from None
