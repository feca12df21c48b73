"""Shared input helpers for the service layer.

clean_text:  string field from a JSON body, stripped; raises ValidationError
             on non-string input (a JSON number or object) or, when required,
             on an empty value.
"""

from studio_portal.core.exceptions import ValidationError


def clean_text(value, field, required=True):
    """Return ``value`` stripped, or None for an absent optional field.

    Raises:
        ValidationError: ``value`` is not a string, or is blank while required.
    """
    if value is None:
        if required:
            raise ValidationError(f"Field '{field}' is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(
            f"Field '{field}' must be a string",
            details={"field": field, "type": type(value).__name__},
        )
    value = value.strip()
    if not value:
        if required:
            raise ValidationError(f"Field '{field}' is required")
        return None
    return value
