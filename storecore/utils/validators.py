import re
from typing import Dict, Iterable, Mapping


_ZIP = re.compile(r"^\d{5}(-?\d{4})?$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_fields(data: Mapping, fields: Iterable[str]) -> Dict[str, str]:
    """Return the stripped values of ``fields`` or raise naming the first missing one."""
    out = {}
    for name in fields:
        value = data.get(name)
        value = str(value).strip() if value is not None else ""
        if not value:
            raise ValueError(f"{name} is required")
        out[name] = value
    return out


def optional_str(data: Mapping, name: str) -> str:
    value = data.get(name)
    return str(value).strip() if value is not None else ""


def validate_email(email: str) -> str:
    if email and not _EMAIL.match(email):
        raise ValueError("Invalid email address")
    return email


def address_format_ok(street: str, city: str, state: str, zip_code: str) -> bool:
    return (
        len((street or "").strip()) >= 5
        and bool(_ZIP.match((zip_code or "").strip()))
        and len((city or "").strip()) >= 2
        and len((state or "").strip()) == 2
    )
