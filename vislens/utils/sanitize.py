"""Validation of caller-supplied test names before they become storage keys."""

import re

from vislens.constants import MAX_NAME_LENGTH
from vislens.exceptions import InvalidNameError

_RESERVED = re.compile(r'[<>:"|?*\\/\x00-\x1f\x7f]')


def validate_name(name: str) -> str:
    """Return ``name`` unchanged if it is safe to use as a storage key.

    Rejects empty names, path separators, parent references, leading dots,
    control characters and characters reserved on common filesystems.
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidNameError("Name must be a non-empty string", operation="validate_name")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(
            f"Name exceeds {MAX_NAME_LENGTH} characters",
            operation="validate_name",
            target=name[:MAX_NAME_LENGTH],
        )
    if name != name.strip():
        raise InvalidNameError(
            "Name must not start or end with whitespace", operation="validate_name", target=name
        )
    if name.startswith("."):
        raise InvalidNameError(
            "Name must not start with '.'", operation="validate_name", target=name
        )
    if ".." in name:
        raise InvalidNameError(
            "Name must not contain '..'", operation="validate_name", target=name
        )
    match = _RESERVED.search(name)
    if match:
        raise InvalidNameError(
            f"Name contains reserved character {match.group()!r}",
            operation="validate_name",
            target=name,
        )
    return name
