"""Tests for the merge HTTP endpoints."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.modules.merge.exceptions import ConfigurationError, FetchError
from app.modules.merge.router import get_merge_service, router
from app.modules.merge.schemas import MergeResponse, ProcessingInfo


def _response() -> MergeResponse:
    return MergeResponse(
        video_url="https://cdn.example.com/merged-videos/merged_1_s.mp4",
        public_id="merged_1_s",
        videos_processed=2,
        file_size="12.50MB",
        original_size="12.50MB",
        processing=ProcessingInfo(applied=False, type="none", quality_preserved=True),
        auto_delete="30 days",
        quality_preservation="preserved",
        upload_type="direct",
        timestamp="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def service() -> AsyncMock:
    mock = AsyncMock()
    mock.merge.return_value = _response()
    return mock


@pytest.fixture
def client(service: AsyncMock) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_merge_service] = lambda: service
    return TestClient(app)


class TestMergeEndpoint:
    def test_success(self, client: TestClient, service: AsyncMock) -> None:
        urls = ["https://a/1.mp4", "https://a/2.mp4"]

        response = client.post("/merge-videos", json={"videoUrls": urls})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["videoUrl"].endswith("merged_1_s.mp4")
        assert body["uploadType"] == "direct"
        assert body["processing"]["qualityPreserved"] is True
        service.merge.assert_awaited_once_with(urls)

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"videoUrls": []},
            {"videoUrls": "https://a/1.mp4"},
            {"videoUrls": [f"https://a/{i}.mp4" for i in range(11)]},
        ],
    )
    def test_invalid_body_is_rejected_before_work(self, client, service, payload) -> None:
        response = client.post("/merge-videos", json=payload)

        assert response.status_code == 400
        assert response.json()["success"] is False
        service.merge.assert_not_called()

    def test_invalid_json(self, client: TestClient, service: AsyncMock) -> None:
        response = client.post(
            "/merge-videos",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        service.merge.assert_not_called()

    def test_pipeline_failure_is_500(self, client: TestClient, service: AsyncMock) -> None:
        service.merge.side_effect = FetchError("https://a/1.mp4", 0, "HTTP error! status: 404", 404)

        response = client.post("/merge-videos", json={"videoUrls": ["https://a/1.mp4"]})

        assert response.status_code == 500
        body = response.json()
        assert body == {
            "success": False,
            "error": "Failed to download video 1 (https://a/1.mp4): HTTP error! status: 404",
            "message": "Failed to merge videos",
        }

    def test_missing_configuration_is_500(self, client: TestClient, service: AsyncMock) -> None:
        service.merge.side_effect = ConfigurationError("Storage configuration missing")

        response = client.post("/merge-videos", json={"videoUrls": ["https://a/1.mp4"]})

        assert response.status_code == 500
        assert response.json()["error"] == "Storage configuration missing"


class TestInfoEndpoints:
    def test_health(self, client: TestClient) -> None:
        body = client.get("/health").json()

        assert body["status"] == "OK"
        assert body["autoDelete"] == "30 days"
        assert "streamed" in body["uploadStrategies"]

    def test_root(self, client: TestClient) -> None:
        body = client.get("/").json()

        assert body["endpoints"]["merge"] == "POST /merge-videos"


class TestApplication:
    def test_unknown_route_and_metrics(self) -> None:
        from app.main import app

        client = TestClient(app)

        not_found = client.get("/does-not-exist")
        assert not_found.status_code == 404
        assert not_found.json()["error"] == "Endpoint not found"

        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "http_requests_total" in metrics.text
