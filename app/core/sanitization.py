"""Input sanitization and validation utilities."""

import re

import bleach


# Maximum lengths, matching the column sizes they end up in
MAX_LENGTHS = {
    "name": 200,
    "department_name": 100,
    "email": 256,
    "employee_code": 50,
    "department_code": 20,
    "description": 500,
    "reason": 1000,
    "default": 255,
}

PATTERNS = {
    "email": re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"),
    # Employee and department codes: letters, digits, dash, underscore
    "code": re.compile(r"^[A-Z0-9][A-Z0-9_-]*$"),
}


def sanitize_string(
    value: str,
    max_length: int = MAX_LENGTHS["default"],
    strip_html: bool = True,
    allow_newlines: bool = False,
) -> str:
    """
    Sanitize a string input.

    - Strips leading/trailing whitespace
    - Removes HTML tags
    - Truncates to max length
    - Optionally collapses newlines
    """
    if not value:
        return ""

    value = value.strip()

    if strip_html:
        value = bleach.clean(value, tags=[], strip=True)

    if not allow_newlines:
        value = " ".join(value.split())

    return value[:max_length]


def sanitize_name(value: str, max_length: int = MAX_LENGTHS["name"]) -> str:
    """Person or department name."""
    return sanitize_string(value, max_length=max_length)


def sanitize_email(value: str) -> str:
    return sanitize_string(value, max_length=MAX_LENGTHS["email"]).lower()


def validate_email(value: str) -> bool:
    if not value or len(value) > MAX_LENGTHS["email"]:
        return False
    return bool(PATTERNS["email"].match(value))


def sanitize_code(value: str, max_length: int) -> str:
    """
    Employee or department code: upper case, inner whitespace replaced
    with dashes.
    """
    value = sanitize_string(value, max_length=max_length).upper()
    return re.sub(r"\s+", "-", value)


def validate_code(value: str) -> bool:
    return bool(value) and bool(PATTERNS["code"].match(value))


def sanitize_description(value: str) -> str:
    """Sanitize a description field (allows newlines)."""
    return sanitize_string(
        value,
        max_length=MAX_LENGTHS["description"],
        allow_newlines=True,
    )


def sanitize_reason(value: str) -> str:
    """Free-text reason stored in the audit trail."""
    return sanitize_string(value, max_length=MAX_LENGTHS["reason"], allow_newlines=True)
