"""
임베딩 제공자 테스트 (OpenAI 클라이언트는 가짜 객체로 대체)
"""

from types import SimpleNamespace

import httpx
import numpy as np
import openai
import pytest

from pipeline.errors import EmbeddingUnavailable
from vector_store.embeddings import OpenAIEmbeddingProvider, random_query_vector


class FakeEmbeddings:
    def __init__(self, vectors=None, error=None):
        self.vectors = vectors if vectors is not None else []
        self.error = error
        self.calls = []

    def create(self, model, input):
        self.calls.append({"model": model, "input": input})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(embedding=v) for v in self.vectors])


def make_provider(embeddings, dimension=4):
    client = SimpleNamespace(embeddings=embeddings)
    return OpenAIEmbeddingProvider(model="text-embedding-3-small", dimension=dimension, api_key="test", client=client)


class TestOpenAIEmbeddingProvider:
    def test_embed(self):
        embeddings = FakeEmbeddings(vectors=[[0.1, 0.2, 0.3, 0.4]])
        provider = make_provider(embeddings)

        assert provider.embed("profile text") == [0.1, 0.2, 0.3, 0.4]
        assert embeddings.calls == [{"model": "text-embedding-3-small", "input": ["profile text"]}]

    def test_api_error_becomes_embedding_unavailable(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        error = openai.APIConnectionError(request=request)
        provider = make_provider(FakeEmbeddings(error=error))

        with pytest.raises(EmbeddingUnavailable) as exc_info:
            provider.embed("profile text")
        assert exc_info.value.__cause__ is error

    def test_dimension_mismatch(self):
        provider = make_provider(FakeEmbeddings(vectors=[[0.1, 0.2]]))
        with pytest.raises(EmbeddingUnavailable):
            provider.embed("profile text")

    def test_empty_response(self):
        provider = make_provider(FakeEmbeddings(vectors=[]))
        with pytest.raises(EmbeddingUnavailable):
            provider.embed("profile text")

    def test_defaults_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
        monkeypatch.setenv("EMBEDDING_DIMENSION", "3072")
        provider = OpenAIEmbeddingProvider(api_key="test")
        assert provider.model == "text-embedding-3-large"
        assert provider.dimension == 3072


class TestRandomQueryVector:
    def test_range_and_dimension(self):
        vector = random_query_vector(1536)
        assert len(vector) == 1536
        assert all(-0.5 <= v < 0.5 for v in vector)

    def test_seeded_generator_is_reproducible(self):
        first = random_query_vector(16, np.random.default_rng(42))
        second = random_query_vector(16, np.random.default_rng(42))
        assert first == second

    def test_vectors_differ_between_calls(self):
        assert random_query_vector(16) != random_query_vector(16)

    @pytest.mark.parametrize("dimension", [0, -1])
    def test_invalid_dimension(self, dimension):
        with pytest.raises(ValueError):
            random_query_vector(dimension)
