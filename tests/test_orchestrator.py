import threading
import time

import numpy as np
import pytest

from docindex.modules.chunker import Chunker
from docindex.modules.models import Document
from docindex.modules.orchestrator import BatchOrchestrator
from docindex.modules.vector_store import VectorStore
from docindex.utils import EmbeddingBatchFailure, EmbeddingGenerationError


def build(client, concurrency=1, batch_size=10, max_retries=3, sleeps=None):
    store = VectorStore()
    orch = BatchOrchestrator(
        Chunker(chunk_size=200, chunk_overlap=40),
        client,
        store,
        batch_size=batch_size,
        max_concurrency=concurrency,
        max_retries=max_retries,
        retry_delay=0.5,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )
    return orch, store


def test_25_chunks_are_embedded_in_three_batches(make_client, numbered_documents):
    client = make_client()
    orch, store = build(client)
    progress = []

    report = orch.add_documents(numbered_documents, on_progress=progress.append)

    assert [len(c) for c in client.calls] == [10, 10, 5]
    assert len(progress) >= 3
    assert report.batches_total == 3
    assert report.batches_committed == 3
    assert report.chunks_committed == 25
    assert report.cancelled is False
    assert store.count() == 25
    assert any("25/25" in m for m in progress)


def test_concurrent_batches_still_commit_in_order(make_client):
    def slow_first(call_no, texts):
        if any("alpha" in t for t in texts):
            time.sleep(0.05)
        return None

    client = make_client(fail=slow_first)
    orch, store = build(client, concurrency=4, batch_size=3)
    content = " ".join(["alpha"] * 30) + " " + " ".join(f"w{i:03d}" for i in range(400))
    orch.add_documents([Document("long.txt", content)])

    expected = [c.id for c in Chunker(chunk_size=200, chunk_overlap=40).chunk(Document("long.txt", content))]
    assert store.ids() == expected
    assert sum(len(c) for c in client.calls) == len(expected)
    assert max(len(c) for c in client.calls) == 3


def test_failure_on_second_batch_keeps_first(make_client, numbered_documents):
    client = make_client(fail=lambda n, texts: RuntimeError("provider down") if n == 2 else None)
    orch, store = build(client)

    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)

    err = exc.value
    assert err.batch_index == 2
    assert err.batch_count == 3
    assert err.committed_chunks == 10
    assert "doc10.txt" in err.sources
    assert isinstance(err.cause, EmbeddingGenerationError)
    assert store.ids() == [f"doc{i}.txt#0" for i in range(10)]


def test_failure_with_concurrency_commits_only_earlier_batches(make_client, numbered_documents):
    def fail_batch_two(call_no, texts):
        if any("number 12 " in t for t in texts):
            return RuntimeError("bad batch")
        return None

    client = make_client(fail=fail_batch_two)
    orch, store = build(client, concurrency=3)

    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)

    assert exc.value.batch_index == 2
    assert store.ids() == [f"doc{i}.txt#0" for i in range(10)]


def test_retryable_error_is_retried_with_backoff(make_client, numbered_documents):
    client = make_client(fail=lambda n, texts: TimeoutError("slow") if n == 1 else None)
    sleeps = []
    orch, store = build(client, sleeps=sleeps)

    report = orch.add_documents(numbered_documents[:5])

    assert len(client.calls) == 2
    assert sleeps == [0.5]
    assert report.chunks_committed == 5


def test_retries_are_bounded(make_client, numbered_documents):
    client = make_client(fail=lambda n, texts: TimeoutError("slow"))
    sleeps = []
    orch, store = build(client, sleeps=sleeps)

    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents[:5])

    assert len(client.calls) == 3
    assert sleeps == [0.5, 1.0]
    assert exc.value.cause.retry_count == 2
    assert store.count() == 0


def test_empty_vectors_mark_chunks_failed_without_crashing(make_client, numbered_documents):
    client = make_client(empty_for=lambda t: "number 3 " in t)
    orch, store = build(client)

    report = orch.add_documents(numbered_documents)

    assert report.failed_chunk_ids == ["doc3.txt#0"]
    assert report.chunks_committed == 24
    assert store.get("doc3.txt#0") is None


def test_short_result_is_a_batch_failure(numbered_documents, fake_client):
    class ShortClient(type(fake_client)):
        def embed(self, texts):
            return super().embed(texts)[:-1]

    orch, store = build(ShortClient())
    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)
    assert exc.value.batch_index == 1
    assert store.count() == 0


def test_dimension_change_between_batches_is_a_batch_failure(numbered_documents, fake_client):
    class DriftingClient(type(fake_client)):
        def embed(self, texts):
            vectors = super().embed(texts)
            if len(self.calls) == 2:
                return [v + [0.0] for v in vectors]
            return vectors

    orch, store = build(DriftingClient())
    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)
    assert exc.value.batch_index == 2
    assert store.count() == 10


@pytest.mark.parametrize("result", [None, "not a list", 42])
def test_non_list_result_is_a_batch_failure(numbered_documents, fake_client, result):
    class BrokenClient(type(fake_client)):
        def embed(self, texts):
            super().embed(texts)
            return result

    orch, store = build(BrokenClient())
    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)
    assert exc.value.batch_index == 1
    assert exc.value.committed_chunks == 0
    assert store.count() == 0


def test_non_numeric_vectors_are_a_batch_failure(numbered_documents, fake_client):
    class GarbageClient(type(fake_client)):
        def embed(self, texts):
            vectors = super().embed(texts)
            if len(self.calls) == 2:
                return [["x", "y"] for _ in vectors]
            return vectors

    orch, store = build(GarbageClient())
    with pytest.raises(EmbeddingBatchFailure) as exc:
        orch.add_documents(numbered_documents)
    assert exc.value.batch_index == 2
    assert isinstance(exc.value.cause, ValueError)
    assert store.count() == 10


def test_nested_vectors_are_a_batch_failure(numbered_documents, fake_client):
    class NestedClient(type(fake_client)):
        def embed(self, texts):
            return [[v] for v in super().embed(texts)]

    orch, store = build(NestedClient())
    with pytest.raises(EmbeddingBatchFailure):
        orch.add_documents(numbered_documents)
    assert store.count() == 0


def test_numpy_vectors_are_committed(numbered_documents, fake_client):
    class NumpyClient(type(fake_client)):
        def embed(self, texts):
            return [np.asarray(v, dtype=np.float32) for v in super().embed(texts)]

    orch, store = build(NumpyClient())
    report = orch.add_documents(numbered_documents)

    assert report.chunks_committed == 25
    assert report.failed_chunk_ids == []
    assert store.dimension == 16


def test_zero_numpy_vectors_mark_chunks_failed(numbered_documents, fake_client):
    class ZeroClient(type(fake_client)):
        def embed(self, texts):
            vectors = super().embed(texts)
            return [np.zeros(16) if "number 3 " in t else np.asarray(v) for t, v in zip(texts, vectors)]

    orch, store = build(ZeroClient())
    report = orch.add_documents(numbered_documents)

    assert report.failed_chunk_ids == ["doc3.txt#0"]
    assert report.chunks_committed == 24


def test_cancellation_stops_at_batch_boundary(make_client, numbered_documents):
    client = make_client()
    orch, store = build(client)
    cancel = threading.Event()

    def on_progress(msg):
        if msg.startswith("Embedded"):
            cancel.set()

    report = orch.add_documents(numbered_documents, on_progress=on_progress, cancel_event=cancel)

    assert report.cancelled is True
    assert len(client.calls) == 1
    assert store.count() == 10


def test_cancellation_commits_batches_already_in_flight(make_client, numbered_documents):
    cancel = threading.Event()
    second_started = threading.Event()

    def pace(n, texts):
        # Batch 1 is slow and cancels once batch 2 is running; batch 2 waits for the cancel
        if "number 0 " in texts[0]:
            second_started.wait(timeout=5)
            cancel.set()
            time.sleep(0.05)
        elif "number 10 " in texts[0]:
            second_started.set()
            cancel.wait(timeout=5)
        return None

    client = make_client(fail=pace)
    orch, store = build(client, concurrency=2)

    report = orch.add_documents(numbered_documents, cancel_event=cancel)

    assert report.cancelled is True
    assert len(client.calls) == 2
    assert not any("number 20 " in t for call in client.calls for t in call)
    assert report.batches_committed == 2
    assert report.chunks_committed == 20
    assert store.count() == 20


def test_cancel_before_start_dispatches_nothing(make_client, numbered_documents):
    client = make_client()
    orch, store = build(client)
    cancel = threading.Event()
    cancel.set()

    report = orch.add_documents(numbered_documents, cancel_event=cancel)

    assert report.cancelled is True
    assert client.calls == []
    assert store.count() == 0


def test_no_documents_reports_completion(make_client):
    client = make_client()
    orch, store = build(client)
    progress = []

    report = orch.add_documents([Document("empty.txt", "")], on_progress=progress.append)

    assert report.total_chunks == 0
    assert client.calls == []
    assert progress


def test_raising_progress_sink_does_not_abort(make_client, numbered_documents):
    def bad_sink(msg):
        raise ValueError("ui gone")

    orch, store = build(make_client())
    report = orch.add_documents(numbered_documents, on_progress=bad_sink)
    assert report.chunks_committed == 25


def test_concurrency_is_capped(make_client, numbered_documents):
    active = {"now": 0, "max": 0}
    lock = threading.Lock()

    def track(call_no, texts):
        with lock:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
        time.sleep(0.02)
        with lock:
            active["now"] -= 1
        return None

    client = make_client(fail=track)
    orch, store = build(client, concurrency=2, batch_size=2)
    orch.add_documents(numbered_documents)

    assert active["max"] <= 2
    assert store.count() == 25


def test_batch_size_never_exceeds_provider_limit(make_client, numbered_documents):
    client = make_client(max_batch_size=4)
    orch, store = build(client, batch_size=10)
    orch.add_documents(numbered_documents)
    assert max(len(c) for c in client.calls) == 4


def test_reindexing_same_documents_is_idempotent(make_client, numbered_documents):
    orch, store = build(make_client())
    orch.add_documents(numbered_documents)
    orch.add_documents(numbered_documents)
    assert store.count() == 25


def test_clear_discards_index(make_client, numbered_documents):
    orch, store = build(make_client())
    orch.add_documents(numbered_documents)
    orch.clear()
    assert store.count() == 0
