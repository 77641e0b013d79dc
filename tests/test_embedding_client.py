"""Tests for the embedding client and HTTP provider."""

from __future__ import annotations

import json
import time
from typing import List

import httpx
import numpy as np
import pytest

from vaultsearch.config import AppConfig
from vaultsearch.embedding.encoder import (
    EmbeddingClient,
    EmbeddingConfig,
    OpenAIEmbeddingProvider,
    build_client,
    build_provider,
)
from vaultsearch.errors import EmbeddingError, RateLimitError

from conftest import FakeProvider, fake_vector


def _openai_response(texts: List[str], *, reverse: bool = False) -> dict:
    data = [
        {"object": "embedding", "index": i, "embedding": [float(i), float(len(text))]}
        for i, text in enumerate(texts)
    ]
    if reverse:
        data.reverse()
    return {"object": "list", "data": data, "model": "test"}


class ScriptedProvider:
    """Raises the scripted exceptions in turn, then succeeds."""

    def __init__(self, failures: list) -> None:
        self.failures = list(failures)
        self.attempts = 0

    def embed_batch(self, texts):
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        return [{"index": i, "embedding": [1.0, 0.0]} for i in range(len(texts))]


class TestEmbeddingClient:
    """Test batching, ordering and retries."""

    def test_order_preserved_when_provider_reverses(self) -> None:
        provider = FakeProvider()
        client = EmbeddingClient(provider)

        vectors = client.get_embeddings(["alpha", "beta", "gamma"])

        for text, vector in zip(["alpha", "beta", "gamma"], vectors):
            np.testing.assert_allclose(vector, fake_vector(text))

    def test_batches_respect_size(self) -> None:
        provider = FakeProvider()
        client = EmbeddingClient(provider, EmbeddingConfig(batch_size=2))

        vectors = client.get_embeddings([f"t{i}" for i in range(5)])

        assert len(vectors) == 5
        assert [len(call) for call in provider.calls] == [2, 2, 1]
        np.testing.assert_allclose(vectors[4], fake_vector("t4"))

    def test_empty_input_makes_no_calls(self) -> None:
        provider = FakeProvider()
        assert EmbeddingClient(provider).get_embeddings([]) == []
        assert provider.calls == []

    def test_vectors_are_float32(self) -> None:
        vectors = EmbeddingClient(FakeProvider()).get_embeddings(["x"])
        assert vectors[0].dtype == np.float32

    def test_embed_query_single_item(self) -> None:
        provider = FakeProvider()
        vector = EmbeddingClient(provider).embed_query("hello")

        assert provider.calls == [["hello"]]
        np.testing.assert_allclose(vector, fake_vector("hello"))

    def test_rate_limit_retried_with_exponential_backoff(self) -> None:
        delays: List[float] = []
        provider = ScriptedProvider([RateLimitError(), RateLimitError()])
        client = EmbeddingClient(provider, sleep=delays.append)

        vectors = client.get_embeddings(["a"])

        assert len(vectors) == 1
        assert provider.attempts == 3
        assert delays == [1.0, 2.0]

    def test_rate_limit_exhausts_retries(self) -> None:
        delays: List[float] = []
        provider = ScriptedProvider([RateLimitError()] * 10)
        client = EmbeddingClient(provider, EmbeddingConfig(max_retries=3), sleep=delays.append)

        with pytest.raises(EmbeddingError) as excinfo:
            client.get_embeddings(["a"])

        assert excinfo.value.status == 429
        assert delays == [1.0, 2.0, 4.0]
        assert provider.attempts == 4

    def test_other_errors_fail_immediately(self) -> None:
        delays: List[float] = []
        provider = ScriptedProvider([EmbeddingError("boom", status=500)])
        client = EmbeddingClient(provider, sleep=delays.append)

        with pytest.raises(EmbeddingError, match="boom"):
            client.get_embeddings(["a"])
        assert delays == []
        assert provider.attempts == 1

    def test_count_mismatch_is_an_error(self) -> None:
        class ShortProvider:
            def embed_batch(self, texts):
                return [{"index": 0, "embedding": [1.0]}]

        with pytest.raises(EmbeddingError, match="Expected 2"):
            EmbeddingClient(ShortProvider()).get_embeddings(["a", "b"])


class TestOpenAIEmbeddingProvider:
    """Test the HTTP provider against a mock transport."""

    def _provider(self, handler) -> OpenAIEmbeddingProvider:
        return OpenAIEmbeddingProvider(
            "sk-test",
            model_name="text-embedding-3-large",
            api_base="https://example.test/v1",
            transport=httpx.MockTransport(handler),
        )

    def test_request_shape_and_reordering(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_openai_response(seen["body"]["input"], reverse=True))

        client = EmbeddingClient(self._provider(handler))
        vectors = client.get_embeddings(["a", "bbb", "cc"])

        assert seen["url"] == "https://example.test/v1/embeddings"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"model": "text-embedding-3-large", "input": ["a", "bbb", "cc"]}
        assert [v.tolist() for v in vectors] == [[0.0, 1.0], [1.0, 3.0], [2.0, 2.0]]

    def test_429_maps_to_rate_limit(self) -> None:
        provider = self._provider(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(RateLimitError):
            provider.embed_batch(["a"])

    def test_server_error_carries_status(self) -> None:
        provider = self._provider(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(EmbeddingError) as excinfo:
            provider.embed_batch(["a"])
        assert excinfo.value.status == 500
        assert "oops" in str(excinfo.value)

    def test_malformed_body(self) -> None:
        provider = self._provider(lambda request: httpx.Response(200, json={"nope": 1}))
        with pytest.raises(EmbeddingError, match="Malformed"):
            provider.embed_batch(["a"])

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(EmbeddingError, match="request failed"):
            self._provider(handler).embed_batch(["a"])

    def test_two_429s_then_success_waits_for_backoff(self) -> None:
        responses = iter([429, 429, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(responses)
            if status == 429:
                return httpx.Response(429, text="rate limited")
            body = json.loads(request.content)
            return httpx.Response(200, json=_openai_response(body["input"]))

        client = EmbeddingClient(self._provider(handler))
        started = time.monotonic()
        vectors = client.get_embeddings(["a", "b"])
        elapsed = time.monotonic() - started

        assert len(vectors) == 2
        assert elapsed >= 3.0


class TestBuildProvider:
    def test_openai_requires_key(self) -> None:
        with pytest.raises(EmbeddingError):
            build_provider(AppConfig(provider="openai"))

    def test_openai_with_key(self) -> None:
        provider = build_provider(AppConfig(api_key="sk-x", api_base="https://example.test/v1"))
        assert isinstance(provider, OpenAIEmbeddingProvider)
        provider.close()

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            build_provider(AppConfig(provider="mystery", api_key="x"))

    def test_build_client_uses_config(self) -> None:
        config = AppConfig(embed_batch_size=7, max_retries=1, backoff_base=0.5)
        client = build_client(config, FakeProvider())

        assert client.config.batch_size == 7
        assert client.config.max_retries == 1
        assert client.config.backoff_base == 0.5
