from __future__ import annotations

from typing import Any, Dict, List, Mapping

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from support_desk.errors import ValidationError

_EMAIL = TypeAdapter(EmailStr)


def _err(param: str, msg: str, value: Any) -> Dict[str, Any]:
    return {"param": param, "msg": msg, "value": value}


def is_valid_email(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        _EMAIL.validate_python(value.strip())
    except PydanticValidationError:
        return False
    return True


def signup_errors(data: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Collect every field error for a signup body (empty list = valid)."""
    errors: List[Dict[str, Any]] = []

    email = data.get("email")
    if not is_valid_email(email):
        errors.append(_err("email", "Email not valid", email))

    first_name = data.get("firstName")
    if not isinstance(first_name, str) or len(first_name.strip()) < 1:
        errors.append(_err("firstName", "First name must be at least length one", first_name))

    last_name = data.get("lastName")
    if not isinstance(last_name, str) or len(last_name.strip()) < 1:
        errors.append(_err("lastName", "Last name must be at least length one", last_name))

    password = data.get("password")
    if not isinstance(password, str) or len(password) < 6:
        errors.append(_err("password", "Password must be at least length 6", None))
    elif password != data.get("confirmPassword"):
        errors.append(_err("password", "Passwords don't match", None))

    return errors


def validate_signup(data: Mapping[str, Any]) -> None:
    errors = signup_errors(data)
    if errors:
        raise ValidationError(errors)
