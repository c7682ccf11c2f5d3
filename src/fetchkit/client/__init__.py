"""Request orchestration for fetchkit.

Classes:
    :class:`ApiClient` -- applies fetch policies, retry and cache fallback,
    and delivers :class:`Result` objects on an executor.
    :class:`HttpxTransport` -- default network collaborator backed by
    :class:`httpx.Client`.
    :class:`PydanticMapper` -- default payload-to-model mapper.

Example::

    from fetchkit.client import ApiClient, HttpxTransport

    with ApiClient(HttpxTransport(config)) as client:
        result = client.fetch_sync(Request.get("/users", model=User, many=True))
"""

from fetchkit.client.mapper import ModelMapper, PydanticMapper
from fetchkit.client.orchestrator import ApiClient, RequestToken
from fetchkit.client.params import parameters_from_query_string
from fetchkit.client.response import Response, Result, format_result
from fetchkit.client.transport import HttpxTransport, TaskHandle, Transport

__all__ = [
    "ApiClient",
    "RequestToken",
    "HttpxTransport",
    "TaskHandle",
    "Transport",
    "ModelMapper",
    "PydanticMapper",
    "Response",
    "Result",
    "format_result",
    "parameters_from_query_string",
]
