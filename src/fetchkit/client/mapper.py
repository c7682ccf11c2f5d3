"""Payload-to-model mapping.

The orchestrator never inspects model classes itself. It hands the raw
payload, the request's key path and its declared
:class:`~fetchkit.models.TypedResult` to a :class:`ModelMapper`, which either
returns the typed model or raises
:class:`~fetchkit.exceptions.ResponseShapeInvalid`.

:class:`PydanticMapper` is the default: it walks a dotted key path and runs
``model_validate`` on what it finds.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from pydantic import ValidationError

from fetchkit.exceptions import ResponseShapeInvalid
from fetchkit.models import TypedResult


class ModelMapper(Protocol):
    """Interface for mapping a raw payload onto the declared result type."""

    def map(self, payload: Any, key_path: Optional[str], result: TypedResult) -> Any:
        """Return the mapped model (or list of models for ``many=True``).

        Raises:
            ResponseShapeInvalid: If the payload does not have the expected shape.
        """
        ...


def locate(payload: Any, key_path: Optional[str]) -> Any:
    """Return the value found at dotted *key_path* inside *payload*.

    An empty or ``None`` key path returns *payload* itself.

    Raises:
        ResponseShapeInvalid: If a segment is missing or crosses a non-object.
    """
    if not key_path:
        return payload
    node = payload
    for segment in key_path.split("."):
        if not isinstance(node, dict) or segment not in node:
            raise ResponseShapeInvalid(
                f"Key path '{key_path}' not found in response (missing '{segment}')"
            )
        node = node[segment]
    return node


class PydanticMapper:
    """Map payloads with Pydantic ``model_validate``.

    Example::

        mapper = PydanticMapper()
        user = mapper.map({"data": {"id": 1}}, "data", TypedResult(model_type=User))
    """

    def map(self, payload: Any, key_path: Optional[str], result: TypedResult) -> Any:
        node = locate(payload, key_path)
        model_type = result.model_type
        if result.many:
            if not isinstance(node, list):
                raise ResponseShapeInvalid(
                    f"Expected a list of {model_type.__name__} at '{key_path or '<root>'}', "
                    f"got {type(node).__name__}"
                )
            items = node
        else:
            items = [node]

        try:
            mapped = [model_type.model_validate(item) for item in items]
        except ValidationError as exc:
            raise ResponseShapeInvalid(
                f"Response does not match {model_type.__name__}: {exc}"
            ) from exc
        except Exception as exc:
            # Validators may raise anything on a payload of the wrong shape.
            raise ResponseShapeInvalid(
                f"Could not map response onto {model_type.__name__}: {exc!r}"
            ) from exc
        return mapped if result.many else mapped[0]
