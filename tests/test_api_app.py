"""Tests for the FastAPI application."""

from __future__ import annotations

from io import BytesIO

from fastapi.testclient import TestClient

from rfprag.api.app import AppDependencies, ResultRegistry, create_app
from rfprag.config import Settings
from rfprag.errors import EmbeddingFailureError
from rfprag.ingestion import KnowledgebaseIngestor, TextChunker
from rfprag.knowledge import InMemoryKnowledgeStore
from rfprag.models import RfpProcessingResult
from rfprag.services.generation import TemplateAnswerGenerator
from rfprag.services.pipeline import ProcessingCoordinator

RFP = b"Section 1. Overview.\nWhat is your delivery timeline?\nThe contract term is two years."
CAPABILITIES = b"We deliver within two weeks of signature. Support is available around the clock."


class StubExtractor:
    def extract(self, data: bytes, *, file_name: str) -> str:
        return data.decode("utf-8")


class StubEmbedder:
    isolates_failures = False

    def embed(self, text: str):
        return (1.0, 0.0) if text.strip() else ()

    def embed_batch(self, texts):
        return [self.embed(text) for text in texts]


def create_test_client() -> TestClient:
    extractor, embedder = StubExtractor(), StubEmbedder()
    deps = AppDependencies(
        store=InMemoryKnowledgeStore(),
        ingestor=KnowledgebaseIngestor(extractor, embedder, TextChunker(60)),
        coordinator=ProcessingCoordinator(extractor, embedder, TemplateAnswerGenerator()),
    )
    app = create_app(settings=Settings(environment="test"), dependencies=deps)
    return TestClient(app)


def _add_capabilities(client: TestClient) -> dict:
    response = client.post(
        "/knowledgebase/documents",
        files=[("files", ("capabilities.txt", BytesIO(CAPABILITIES), "text/plain"))],
    )
    assert response.status_code == 201, response.text
    return response.json()


def _process(client: TestClient):
    return client.post("/rfp", files={"file": ("rfp.pdf", BytesIO(RFP), "application/pdf")})


def test_processing_requires_knowledgebase():
    client = create_test_client()
    response = _process(client)
    assert response.status_code == 409
    assert "knowledgebase" in response.json()["detail"].lower()


def test_add_and_list_knowledgebase_documents():
    client = create_test_client()
    payload = _add_capabilities(client)
    assert payload["items"][0]["fileName"] == "capabilities.txt"
    assert payload["items"][0]["chunkCount"] == 2
    assert payload["totalChunks"] == 2

    listing = client.get("/knowledgebase").json()
    assert [item["fileName"] for item in listing["items"]] == ["capabilities.txt"]

    _add_capabilities(client)
    assert len(client.get("/knowledgebase").json()["items"]) == 1


def test_unsupported_upload_is_rejected():
    client = create_test_client()
    response = client.post("/knowledgebase/documents", files=[("files", ("tool.exe", BytesIO(b"MZ"), "application/octet-stream"))])
    assert response.status_code == 415


def test_process_edit_reset_and_export():
    client = create_test_client()
    _add_capabilities(client)

    response = _process(client)
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["processingStatus"] == "Completed"
    assert result["progress"] == 100
    question = result["questions"][0]
    assert question["text"] == "What is your delivery timeline?"
    assert question["answer"].startswith("We deliver within two weeks")
    assert question["relevantKnowledgebaseItems"]

    base = f"/rfp/{result['id']}/questions/{question['id']}"
    edited = client.put(f"{base}/answer", json={"answer": "Ten business days."}).json()
    assert edited["answer"] == "Ten business days."
    assert edited["isAnswerEdited"] is True
    assert edited["originalAnswer"] == question["answer"]

    csv_response = client.get(f"/rfp/{result['id']}/export.csv")
    assert csv_response.status_code == 200
    assert csv_response.text.startswith("Question,Answer,Confidence,Is Modified,Original Answer\n")
    assert "Ten business days.," in csv_response.text
    assert "rfp_qa_" in csv_response.headers["content-disposition"]

    reset = client.post(f"{base}/reset").json()
    assert reset["answer"] == question["answer"]
    assert reset["isAnswerEdited"] is False

    exported = client.get(f"/rfp/{result['id']}/export.json").json()
    assert exported["questions"][0]["answer"] == question["answer"]
    assert client.get(f"/rfp/{result['id']}").json()["id"] == result["id"]


def test_unknown_result_and_question_return_404():
    client = create_test_client()
    assert client.get("/rfp/missing").status_code == 404
    _add_capabilities(client)
    result = _process(client).json()
    response = client.put(f"/rfp/{result['id']}/questions/missing/answer", json={"answer": "x"})
    assert response.status_code == 404


def test_remove_and_clear_knowledgebase():
    client = create_test_client()
    item_id = _add_capabilities(client)["items"][0]["id"]
    assert client.delete(f"/knowledgebase/{item_id}").status_code == 204
    assert client.delete(f"/knowledgebase/{item_id}").status_code == 404

    _add_capabilities(client)
    assert client.delete("/knowledgebase").status_code == 204
    assert client.get("/knowledgebase").json()["items"] == []


def test_health_endpoints_carry_correlation_id():
    client = create_test_client()
    response = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Correlation-ID"] == "abc123"
    assert client.get("/livez").json() == {"status": "alive"}
    assert client.get("/healthz/ready").json()["items"] == "0"


def test_result_registry_evicts_oldest_run():
    registry = ResultRegistry(max_results=2)
    runs = [RfpProcessingResult(file_name=f"rfp-{index}.pdf") for index in range(3)]
    for run in runs:
        registry.add(run)
    assert len(registry) == 2
    assert registry.get(runs[0].id) is None
    assert registry.get(runs[2].id) is runs[2]


def test_api_forgets_runs_beyond_cache_size():
    extractor, embedder = StubExtractor(), StubEmbedder()
    deps = AppDependencies(
        store=InMemoryKnowledgeStore(),
        ingestor=KnowledgebaseIngestor(extractor, embedder, TextChunker(60)),
        coordinator=ProcessingCoordinator(extractor, embedder, TemplateAnswerGenerator()),
        results=ResultRegistry(max_results=1),
    )
    client = TestClient(create_app(settings=Settings(environment="test"), dependencies=deps))
    _add_capabilities(client)

    first = _process(client).json()
    second = _process(client).json()
    assert client.get(f"/rfp/{first['id']}").status_code == 404
    assert client.get(f"/rfp/{second['id']}").status_code == 200


class FailingEmbedder(StubEmbedder):
    def embed_batch(self, texts):
        raise EmbeddingFailureError("Failed to generate embeddings: input too long")


def test_embedding_backend_failure_maps_to_bad_gateway():
    extractor, embedder = StubExtractor(), FailingEmbedder()
    deps = AppDependencies(
        store=InMemoryKnowledgeStore(),
        ingestor=KnowledgebaseIngestor(extractor, embedder, TextChunker(60)),
        coordinator=ProcessingCoordinator(extractor, embedder, TemplateAnswerGenerator()),
    )
    client = TestClient(create_app(settings=Settings(environment="test"), dependencies=deps))
    response = client.post(
        "/knowledgebase/documents",
        files=[("files", ("capabilities.txt", BytesIO(CAPABILITIES), "text/plain"))],
    )
    assert response.status_code == 502
    assert "input too long" in response.json()["detail"]
