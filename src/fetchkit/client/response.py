"""Delivery types for orchestrated requests, plus a bridge to the output system.

Completion callbacks receive one :class:`Result` per delivery. A successful
result wraps a :class:`Response`; a failed one wraps the
:class:`~fetchkit.exceptions.FetchkitError` that ended the request.

:func:`format_result` routes a result through
:meth:`~fetchkit.output.OutputManager.format_response`, writing a short
status line to stderr first, the way CLI commands present results.

See Also:
    :mod:`fetchkit.output` -- the output manager that renders data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel

from fetchkit.exceptions import FetchkitError
from fetchkit.output import get_output


@dataclass(frozen=True)
class Response:
    """A successfully mapped response.

    Attributes:
        model: The mapped model, a list of models for ``many`` results, or
            ``None`` for :class:`~fetchkit.models.EmptyResult` requests.
        json: The exact payload dict the model was mapped from.
        is_cached_response: ``True`` when served from the response cache.
        is_final_response: ``False`` only for the early cache hit of a
            ``CACHE_THEN_NETWORK`` request; a final result follows it.
    """

    model: Any = None
    json: dict[str, Any] = field(default_factory=dict)
    is_cached_response: bool = False
    is_final_response: bool = True


@dataclass(frozen=True)
class Result:
    """Outcome handed to a completion callback: a response or an error."""

    response: Optional[Response] = None
    error: Optional[FetchkitError] = None

    @classmethod
    def success(cls, response: Response) -> Result:
        return cls(response=response)

    @classmethod
    def failure(cls, error: FetchkitError) -> Result:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_final(self) -> bool:
        """Failures are always final."""
        return self.response is None or self.response.is_final_response

    def unwrap(self) -> Response:
        """Return the response, or raise the stored error."""
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


def _dump(model: Any) -> Any:
    if isinstance(model, BaseModel):
        return model.model_dump(mode="json")
    if isinstance(model, list):
        return [_dump(item) for item in model]
    return model


def format_result(result: Result) -> None:
    """Print *result* with the global output manager.

    Failures go to stderr as an error line. Successes print a status line
    (cache/network, final/intermediate) to stderr and the data to stdout:
    the mapped model when there is one, otherwise the raw payload.
    """
    output = get_output()
    if result.error is not None:
        output.error(str(result.error))
        return

    response = result.unwrap()
    source = "cache" if response.is_cached_response else "network"
    stage = "final" if response.is_final_response else "intermediate"
    output.info(f"{stage} response from {source}")

    data = _dump(response.model) if response.model is not None else response.json
    output.format_response(data)
