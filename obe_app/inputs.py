from datetime import datetime

from .errors import ValidationFailed


def _missing(value):
    return value is None or (isinstance(value, str) and not value.strip())


def require_fields(payload, *names):
    missing = [n for n in names if _missing(payload.get(n))]
    if missing:
        raise ValidationFailed("Missing required fields: " + ", ".join(missing), missing_fields=missing)


def to_int(value, field, required=True, minimum=None, maximum=None):
    if _missing(value):
        if required:
            raise ValidationFailed(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be an integer", field=field)
    try:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be an integer", field=field)
    if minimum is not None and number < minimum:
        raise ValidationFailed(f"{field} must be at least {minimum}", field=field)
    if maximum is not None and number > maximum:
        raise ValidationFailed(f"{field} must be at most {maximum}", field=field)
    return number


def to_number(value, field, required=True, minimum=None, maximum=None, positive=False):
    if _missing(value):
        if required:
            raise ValidationFailed(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a number", field=field)
    if number != number:  # NaN
        raise ValidationFailed(f"{field} must be a number", field=field)
    if positive and number <= 0:
        raise ValidationFailed(f"{field} must be greater than 0", field=field)
    if minimum is not None and number < minimum:
        raise ValidationFailed(f"{field} must be at least {minimum}", field=field)
    if maximum is not None and number > maximum:
        raise ValidationFailed(f"{field} must be at most {maximum}", field=field)
    return number


def to_datetime(value, field):
    if _missing(value):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"{field} must be an ISO date", field=field)


def to_choice(value, field, choices, required=True):
    if _missing(value):
        if required:
            raise ValidationFailed(f"{field} is required", field=field)
        return None
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationFailed(
            f"Invalid {field}. Must be one of: " + ", ".join(choices),
            field=field, allowed=list(choices),
        )
    return normalized


def optional_str(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def query_int(args, name):
    """Optional integer query-string parameter."""
    return to_int(args.get(name), name, required=False)


def to_bool(value, field):
    if isinstance(value, bool):
        return value
    raise ValidationFailed(f"{field} must be true or false", field=field)


def json_object(body):
    """Parsed JSON request body; absent means empty, anything but an object is rejected."""
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return body
