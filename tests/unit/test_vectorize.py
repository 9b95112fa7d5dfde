from __future__ import annotations

import sys
import types

import numpy as np
import pytest

from hmem.errors import EmbeddingError
from hmem.vectorize import (
    EmbeddingProvider,
    HashingEmbedder,
    Intent,
    SentenceTransformerEmbedder,
    build_embedder,
    prepare,
)


def test_prepare_uses_asymmetric_prefixes():
    assert prepare("hi", Intent.QUERY) == "search_query: hi"
    assert prepare("hi", Intent.DOCUMENT) == "search_document: hi"


def test_hashing_embedder_shape_norm_and_determinism():
    e = HashingEmbedder(dim=64)
    a = e.embed("I love hiking in the mountains", Intent.DOCUMENT)
    b = e.embed("I love hiking in the mountains", Intent.DOCUMENT)

    assert a.shape == (64,)
    assert a.dtype == np.float32
    assert np.linalg.norm(a) == pytest.approx(1.0, abs=1e-5)
    assert np.allclose(a, b)


def test_hashing_embedder_shared_words_are_closer():
    e = HashingEmbedder(dim=256)
    doc = e.embed("weekend hiking trip to the lake", Intent.DOCUMENT)
    near = e.embed("hiking trip", Intent.QUERY)
    far = e.embed("quarterly revenue forecast", Intent.QUERY)
    assert float(doc @ near) > float(doc @ far)


class _Fixed(EmbeddingProvider):
    def __init__(self, out, dim=4):
        self.out = out
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def _encode(self, text: str):
        if isinstance(self.out, Exception):
            raise self.out
        return self.out


def test_embed_rejects_dimension_mismatch():
    with pytest.raises(EmbeddingError, match="dim mismatch"):
        _Fixed(np.ones(3, dtype=np.float32)).embed("x", Intent.QUERY)


def test_embed_rejects_non_finite():
    with pytest.raises(EmbeddingError):
        _Fixed(np.array([1.0, np.nan, 0.0, 0.0], dtype=np.float32)).embed("x", Intent.QUERY)


def test_embed_wraps_provider_exceptions():
    with pytest.raises(EmbeddingError, match="boom"):
        _Fixed(RuntimeError("boom")).embed("x", Intent.DOCUMENT)


def test_embed_normalizes_output():
    v = _Fixed(np.array([3.0, 4.0, 0.0, 0.0], dtype=np.float32)).embed("x", Intent.DOCUMENT)
    assert np.allclose(v, [0.6, 0.8, 0.0, 0.0])


class _FakeModel:
    def __init__(self):
        self.seen = []

    def encode(self, texts, convert_to_numpy=True, normalize_embeddings=True):
        self.seen.extend(texts)
        return np.ones((len(texts), 4), dtype=np.float32) / 2.0


def test_sentence_embedder_sends_prefixed_text_to_model():
    e = SentenceTransformerEmbedder(model_name="fake", dim=4)
    e._model = _FakeModel()

    v = e.embed("where did I park", Intent.QUERY)

    assert e._model.seen == ["search_query: where did I park"]
    assert np.allclose(v, [0.5, 0.5, 0.5, 0.5])


def test_sentence_embedder_warm_up_loads_model_once(monkeypatch):
    loads = []

    class _FakeSentenceTransformer(_FakeModel):
        def __init__(self, name, device=None, trust_remote_code=False):
            super().__init__()
            loads.append((name, trust_remote_code))

        def get_sentence_embedding_dimension(self):
            return 4

    module = types.ModuleType("sentence_transformers")
    module.SentenceTransformer = _FakeSentenceTransformer
    monkeypatch.setitem(sys.modules, "sentence_transformers", module)

    e = SentenceTransformerEmbedder(model_name="fake", dim=4)
    e.warm_up()
    e.embed("hello", Intent.DOCUMENT)

    assert loads == [("fake", True)]
    assert e._model.seen == ["search_document: hello"]


def test_default_warm_up_is_a_no_op():
    HashingEmbedder(dim=16).warm_up()


def test_build_embedder():
    assert isinstance(build_embedder("hashing", dim=32), HashingEmbedder)
    assert isinstance(build_embedder("sentence-transformers", dim=768), SentenceTransformerEmbedder)
    with pytest.raises(ValueError):
        build_embedder("nope", dim=8)


@pytest.mark.embeddings
def test_sentence_embedder_real_model_ranks_related_text_higher():
    import os

    model = os.environ.get("HMEM_TEST_MODEL", "").strip()
    if not model:
        pytest.skip("set HMEM_TEST_MODEL to run against a real model")

    loader = SentenceTransformerEmbedder(model_name=model, dim=1)
    dim = int(loader._get_model().get_sentence_embedding_dimension())
    e = SentenceTransformerEmbedder(model_name=model, dim=dim)
    e._model = loader._model

    q = e.embed("outdoor activities", Intent.QUERY)
    hiking = e.embed("I love hiking", Intent.DOCUMENT)
    france = e.embed("What's the capital of France?", Intent.DOCUMENT)
    assert float(q @ hiking) > float(q @ france)
