"""Query-string helpers."""

from __future__ import annotations

from typing import Optional
from urllib.parse import unquote


def parameters_from_query_string(text: str) -> Optional[dict[str, str]]:
    """Parse ``a=1&b=two`` into a parameter dict.

    Names and values are percent-decoded. A leading ``?`` is ignored, a
    chunk without ``=`` is skipped, and a repeated name keeps its last value.

    Returns:
        The parameters, or ``None`` when *text* holds no ``name=value`` pairs.
    """
    parameters: dict[str, str] = {}
    for chunk in text.lstrip("?").split("&"):
        name, sep, value = chunk.partition("=")
        if not sep or not name:
            continue
        parameters[unquote(name)] = unquote(value)
    return parameters or None
