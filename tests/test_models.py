"""Tests for request descriptors, fingerprints and retry policies."""

from __future__ import annotations

import hashlib
import json

import pytest
from pydantic import BaseModel, ValidationError

from fetchkit.models import (
    CacheFetchPolicy,
    EmptyResult,
    HTTPMethod,
    Request,
    RetryPolicy,
    TypedResult,
)


class Video(BaseModel):
    uri: str


class TestRetryPolicy:
    def test_single_attempt_never_retries(self) -> None:
        assert not RetryPolicy.single_attempt().allows_retry

    def test_next_decrements_and_doubles(self) -> None:
        policy = RetryPolicy.multiple_attempts(3, 0.5)
        assert policy.allows_retry
        second = policy.next()
        assert (second.attempt_count, second.initial_delay) == (2, 1.0)
        third = second.next()
        assert (third.attempt_count, third.initial_delay) == (1, 2.0)
        assert not third.allows_retry
        assert third.next().attempt_count == 1

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValidationError):
            RetryPolicy(attempt_count=0)


class TestRequest:
    def test_build_picks_result_kind(self) -> None:
        assert isinstance(Request.get("/me").result, EmptyResult)
        typed = Request.get("/videos", model=Video, many=True).result
        assert isinstance(typed, TypedResult)
        assert typed.many

    def test_build_accepts_lowercase_method(self) -> None:
        assert Request.build("patch", "/me").method is HTTPMethod.PATCH

    def test_build_rejects_unknown_method(self) -> None:
        with pytest.raises(ValueError):
            Request.build("TRACE", "/me")

    def test_defaults(self) -> None:
        request = Request.post("/videos")
        assert request.cache_fetch_policy is CacheFetchPolicy.NETWORK_ONLY
        assert request.retry_policy == RetryPolicy()
        assert not request.should_cache_response

    def test_frozen(self) -> None:
        request = Request.get("/me")
        with pytest.raises(ValidationError):
            request.path = "/other"  # type: ignore[misc]

    def test_derivations_return_new_requests(self) -> None:
        request = Request.get("/me", retry_policy=RetryPolicy.multiple_attempts(2, 1.0))
        retried = request.next_attempt()
        fallback = request.with_fetch_policy(CacheFetchPolicy.CACHE_ONLY)

        assert request.retry_policy.attempt_count == 2
        assert retried.retry_policy.attempt_count == 1
        assert fallback.cache_fetch_policy is CacheFetchPolicy.CACHE_ONLY
        assert fallback.fingerprint == request.fingerprint


class TestFingerprint:
    def test_parameter_order_irrelevant(self) -> None:
        a = Request.get("/v", parameters={"a": "1", "b": "2"})
        b = Request.get("/v", parameters={"b": "2", "a": "1"})
        assert a.fingerprint == b.fingerprint

    @pytest.mark.parametrize("other", [
        Request.post("/v"),
        Request.get("/w"),
        Request.get("/v", parameters={"a": "1"}),
        Request.get("/v", model=Video),
        Request.get("/v", model=Video, many=True),
    ])
    def test_distinguishing_fields(self, other: Request) -> None:
        assert Request.get("/v").fingerprint != other.fingerprint

    def test_policy_does_not_change_fingerprint(self) -> None:
        base = Request.get("/v")
        assert base.fingerprint == Request.get(
            "/v",
            cache_fetch_policy=CacheFetchPolicy.CACHE_THEN_NETWORK,
            should_cache_response=True,
        ).fingerprint

    def test_is_hex_digest(self) -> None:
        fingerprint = Request.get("/v").fingerprint
        assert len(fingerprint) == 64
        int(fingerprint, 16)

    def test_fields_are_json_encoded(self) -> None:
        request = Request.get("/a|b", parameters={"q": "x|y", "a": "1"})
        raw = json.dumps(["GET", "/a|b", {"a": "1", "q": "x|y"}, "empty"], sort_keys=True)
        assert request.fingerprint == hashlib.sha256(raw.encode()).hexdigest()
