import os
import sys

# Ensure project root is on sys.path so 'docindex' package can be imported in tests
PROJECT_ROOT = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Keep the suite offline: the app module builds its engine at import time
os.environ.setdefault("EMBEDDING_PROVIDER", "hash")

import threading

import pytest

from docindex.modules.embeddings import EmbeddingClient, HashEmbeddingClient
from docindex.modules.models import Document


class FakeEmbeddingClient(EmbeddingClient):
    """Records every call; failures and empty vectors are driven by predicates on the batch texts."""

    name = "fake"

    def __init__(self, fail=None, empty_for=None, dim=16, max_batch_size=10):
        self.fail = fail
        self.empty_for = empty_for
        self.max_batch_size = max_batch_size
        self.calls = []
        self._hash = HashEmbeddingClient(dim=dim)
        self._lock = threading.Lock()

    def embed(self, texts):
        with self._lock:
            self.calls.append(list(texts))
            call_no = len(self.calls)
        if self.fail is not None:
            err = self.fail(call_no, texts)
            if err is not None:
                raise err
        vectors = self._hash.embed(texts)
        if self.empty_for is not None:
            vectors = [[] if self.empty_for(t) else v for t, v in zip(texts, vectors)]
        return vectors


@pytest.fixture()
def fake_client():
    return FakeEmbeddingClient()


@pytest.fixture()
def numbered_documents():
    return [Document(f"doc{i}.txt", f"document number {i} talks about topic {i}") for i in range(25)]


@pytest.fixture()
def make_client():
    return FakeEmbeddingClient
