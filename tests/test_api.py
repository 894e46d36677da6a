"""Tests for the HTTP layer with an in-memory store behind the service."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeStore, all_templates
from printables.config.layout import TemplateType, get_template_spec
from printables.config.settings import settings
from printables.delivery.schemas.body import ItemIn
from printables.domain.printable_service import PrintableService
from printables.infrastructure.pdf.compositor import PrintableCompositor
from printables.infrastructure.storage.r2_store import HealthReport
from printables.main import app

T = TemplateType
AUTH = (settings.BASIC_AUTH_USERNAME, settings.BASIC_AUTH_PASSWORD)
PREFIX = settings.API_V1_STR + "/printables"


def headline_item(item_type="flyer1", scale=1.0):
    return {
        "type": item_type,
        "canvasScale": scale,
        "textElements": [{
            "id": "h1",
            "type": "headline",
            "text": "Sonnenschule\nSommerkonzert",
            "position": {"x": 60, "y": 40},
            "size": {"width": 400, "height": 80},
            "fontSize": 22,
            "color": "#E87452",
        }],
    }


def event_payload(**extra):
    payload = {"eventId": "evt_1", "schoolName": "Sonnenschule", "eventDate": "2025-06-12"}
    payload.update(extra)
    return payload


@pytest.fixture
def store():
    return FakeStore(all_templates())


@pytest.fixture
def client(store):
    # No lifespan: the service is wired by hand
    app.state.printable_service = PrintableService(store=store, compositor=PrintableCompositor())
    yield TestClient(app)
    app.state.printable_service = None


class TestAuth:
    def test_requires_credentials(self, client):
        assert client.post(f"{PREFIX}/generate", json=event_payload(items=[headline_item()])).status_code == 401

    def test_wrong_password(self, client):
        response = client.get(f"{PREFIX}/health", auth=(AUTH[0], "wrong"))
        assert response.status_code == 401

    def test_liveness_is_public(self, client):
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/").json()["status"] == "ok"


class TestGenerate:
    def test_generates_items_with_qr(self, client, store):
        items = [headline_item(), {"type": "flyer1-back", "qrPosition": {"x": 250, "y": 80, "size": 100}}]
        response = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(accessCode=1234, items=items))
        assert response.status_code == 200
        data = response.json()
        assert data["success"] and not data["partialSuccess"]
        assert data["qrCodeIncluded"]
        assert data["accessCode"] == 1234
        assert [r["type"] for r in data["results"]["succeeded"]] == ["flyer1", "flyer1-back"]
        assert data["results"]["failed"] == []
        assert get_template_spec(T.FLYER1_BACK).output_key("evt_1") in store.uploads

    def test_backs_without_access_code_are_skipped(self, client):
        items = [headline_item(), {"type": "flyer2-back"}]
        data = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=items)).json()
        assert not data["qrCodeIncluded"]
        assert data["results"]["skipped"] == [{"type": "flyer2-back", "reason": "No QR code available"}]
        assert data["results"]["failed"] == []
        assert data["partialSuccess"]

    def test_skipped_items_get_placeholders(self, client, store):
        payload = event_payload(accessCode="A1", items=[headline_item("tshirt")], skippedItems=["hoodie"])
        data = client.post(f"{PREFIX}/generate", auth=AUTH, json=payload).json()
        assert data["results"]["succeeded"][0]["type"] == "tshirt-print"
        assert data["results"]["skipped"] == [{"type": "hoodie-print", "reason": "Skipped by operator"}]
        assert get_template_spec(T.HOODIE_PRINT).skipped_key("evt_1") in store.files

    def test_back_skipped_by_operator_is_listed_once(self, client):
        payload = event_payload(items=[headline_item(), {"type": "flyer1-back"}], skippedItems=["flyer1-back"])
        data = client.post(f"{PREFIX}/generate", auth=AUTH, json=payload).json()
        assert data["results"]["skipped"] == [{"type": "flyer1-back", "reason": "Skipped by operator"}]
        assert data["results"]["failed"] == []

    def test_failed_health_check_returns_400(self, client, store):
        store.health = HealthReport(
            healthy=False, bucket_accessible=True, bucket_name="b",
            templates_missing=["button"], errors=["Missing required templates: button"],
        )
        response = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=[headline_item()]))
        assert response.status_code == 400
        data = response.json()
        assert data["healthCheck"]["missingTemplates"] == ["button"]
        assert data["errors"] == ["Missing required templates: button"]
        assert store.uploads == {}

    def test_empty_items_rejected(self, client):
        response = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=[]))
        assert response.status_code == 422

    def test_unknown_type_rejected(self, client):
        response = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=[{"type": "poster"}]))
        assert response.status_code == 422

    def test_service_not_ready(self, client):
        app.state.printable_service = None
        response = client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=[headline_item()]))
        assert response.status_code == 503


class TestGenerateAllAndRetry:
    def test_generate_all(self, client, store):
        data = client.post(f"{PREFIX}/generate-all", auth=AUTH, json=event_payload(accessCode=7)).json()
        assert data["success"]
        assert len(data["results"]["succeeded"]) == len(TemplateType)

    def test_retry_merges_by_type(self, client, store):
        payload = event_payload(
            accessCode=7,
            previous=[
                {"success": True, "type": "flyer1", "key": "events/evt_1/printables/flyers/flyer1.pdf"},
                {"success": False, "type": "button", "error": "Template not found: button"},
            ],
            items=[headline_item("button")],
        )
        data = client.post(f"{PREFIX}/retry", auth=AUTH, json=payload).json()
        assert data["success"] and not data["partialSuccess"]
        assert [r["type"] for r in data["results"]["succeeded"]] == ["flyer1", "button"]
        assert list(store.uploads) == ["events/evt_1/printables/button.pdf"]


class TestPreview:
    def test_inline_pdf(self, client, store):
        response = client.post(f"{PREFIX}/preview", auth=AUTH, json={"eventId": "evt_1", "item": headline_item()})
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert store.uploads == {}

    def test_signed_url(self, client, store):
        payload = {"eventId": "evt_1", "item": headline_item("flyer3"), "delivery": "url"}
        data = client.post(f"{PREFIX}/preview", auth=AUTH, json=payload).json()
        assert data["key"].startswith("previews/evt_1/flyer3_")
        assert data["key"] in store.files
        assert data["expiresIn"] == settings.PREVIEW_URL_TTL
        assert data["url"].endswith(f"ttl={settings.PREVIEW_URL_TTL}")

    def test_back_without_access_code(self, client):
        response = client.post(f"{PREFIX}/preview", auth=AUTH, json={"eventId": "evt_1", "item": {"type": "flyer1-back"}})
        assert response.status_code == 400
        assert "No QR code" in response.json()["detail"]


class TestHealthAndStatus:
    def test_assets_health(self, client):
        data = client.get(f"{PREFIX}/health", auth=AUTH).json()
        assert data["healthy"]
        assert data["bucketAccessible"]

    def test_unhealthy_assets(self, client, store):
        store.health = HealthReport(healthy=False, bucket_accessible=False, bucket_name="b", errors=["Bucket access error"])
        assert client.get(f"{PREFIX}/health", auth=AUTH).status_code == 503

    def test_status_uses_editor_names(self, client, store):
        client.post(f"{PREFIX}/generate", auth=AUTH, json=event_payload(items=[headline_item()], skippedItems=["tshirt"]))
        data = client.get(f"{PREFIX}/status", auth=AUTH, params={"eventId": "evt_1"}).json()
        assert data["printables"]["flyer1"] == "confirmed"
        assert data["printables"]["tshirt"] == "skipped"
        assert data["printables"]["hoodie"] == "pending"
        assert "mock-tshirt" not in data["printables"]

    def test_status_requires_event_id(self, client):
        assert client.get(f"{PREFIX}/status", auth=AUTH).status_code == 422


class TestItemConversion:
    def test_css_pixels_become_pdf_points(self):
        item = ItemIn.model_validate({
            "type": "flyer1",
            "canvasScale": 2,
            "textElements": [{
                "id": "h1", "text": "Hallo",
                "position": {"x": 100, "y": 50}, "size": {"width": 200, "height": 40},
                "fontSize": 20, "color": "#ff0000",
            }],
            "qrPosition": {"x": 40, "y": 20, "size": 100},
        })
        config = item.to_item_config()
        element = config.text_elements[0]
        # page height 298pt, box bottom at css y 90 -> 45pt from the top
        assert (element.x, element.y) == (50, 253)
        assert (element.width, element.height) == (100, 20)
        assert element.font_size == 10
        assert element.color == (1.0, 0.0, 0.0)
        assert (config.qr_position.x, config.qr_position.y, config.qr_position.size) == (20, 238, 50)

    def test_editor_alias(self):
        assert ItemIn.model_validate({"type": "hoodie"}).type is T.HOODIE_PRINT

    def test_default_scale(self):
        assert ItemIn.model_validate({"type": "button"}).canvas_scale == 1.0
