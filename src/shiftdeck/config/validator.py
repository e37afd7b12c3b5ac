"""Validation message helpers for ShiftDeck configuration."""

from pydantic import ValidationError as PydanticValidationError


def _format_location(loc: tuple[int | str, ...]) -> str:
    path = ""
    for item in loc:
        if isinstance(item, int):
            path += f"[{item}]"
        else:
            path += f".{item}" if path else str(item)
    return path or "unknown"


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into one message per field.

    Discriminated-union tags (``maven``, ``docker`` ...) stay in the path so
    a request error points at the resource variant that failed.

    Example:
        >>> flatten_pydantic_errors(exc)  # doctest: +SKIP
        ["Field 'maven.remote_repositories.central.url': Value error, ..."]
    """
    messages = []
    for error in exc.errors():
        field_path = _format_location(tuple(error.get("loc", ())))
        msg = error.get("msg", "Unknown error")
        if error.get("type") == "missing":
            messages.append(f"Field '{field_path}': is required")
        else:
            messages.append(f"Field '{field_path}': {msg}")
    return messages or ["Validation failed with unknown error"]
