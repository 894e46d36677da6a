"""Shared fixtures: an in-memory asset store and generated template PDFs."""

from __future__ import annotations

import asyncio
import io
from typing import Dict, Optional, Set

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from printables.config.layout import (
    GENERATION_ORDER,
    FontName,
    TemplateType,
    get_template_spec,
    is_mockup,
)
from printables.infrastructure.pdf.compositor import PrintableCompositor
from printables.infrastructure.storage.r2_store import AssetNotFoundError, HealthReport, UploadResult


def make_template_pdf(width: float, height: float, pages: int = 1) -> bytes:
    """A plain template page with a frame, like an uploaded design."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height), invariant=1)
    for _ in range(pages):
        c.setStrokeColorRGB(0.5, 0.5, 0.5)
        c.rect(10, 10, width - 20, height - 20)
        c.showPage()
    c.save()
    return buf.getvalue()


def make_logo_png(width: int = 40, height: int = 20) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), (200, 30, 30, 255)).save(buf, format="PNG")
    return buf.getvalue()


class FakeStore:
    """In-memory stand-in for R2Store with the same async surface."""

    def __init__(self, templates: Optional[Dict[TemplateType, bytes]] = None):
        self.templates: Dict[TemplateType, bytes] = dict(templates or {})
        self.fonts: Dict[FontName, bytes] = {}
        self.files: Dict[str, bytes] = {}
        self.uploads: Dict[str, bytes] = {}
        self.fail_uploads: Set[TemplateType] = set()
        self.logo: Optional[bytes] = None
        self.font_requests = 0
        self.health: Optional[HealthReport] = None
        self.bucket = "test-assets"

    async def get_template(self, template_type):
        return self.templates.get(TemplateType(template_type))

    async def template_exists(self, template_type):
        return TemplateType(template_type) in self.templates

    async def get_font(self, font):
        self.font_requests += 1
        if font not in self.fonts:
            raise AssetNotFoundError(f"Font not found: fonts/{font.value}")
        return self.fonts[font]

    async def upload_generated(self, event_id, template_type, data):
        key = get_template_spec(template_type).output_key(event_id)
        if template_type in self.fail_uploads:
            return UploadResult(success=False, key=key, error="Upload failed after 3 attempts: boom")
        self.uploads[key] = data
        return UploadResult(success=True, key=key)

    async def upload_bytes(self, key, data, content_type):
        self.files[key] = data
        return UploadResult(success=True, key=key)

    def get_signed_url(self, key, ttl_seconds=1800):
        return f"https://signed.example/{key}?ttl={ttl_seconds}"

    async def get_event_logo(self, event_id):
        return self.logo

    async def upload_skipped_placeholder(self, event_id, template_type):
        key = get_template_spec(template_type).skipped_key(event_id)
        self.files[key] = b"{}"
        return UploadResult(success=True, key=key)

    async def get_printables_status(self, event_id):
        status = {}
        for t in GENERATION_ORDER:
            if is_mockup(t):
                continue
            spec = get_template_spec(t)
            if spec.output_key(event_id) in self.uploads:
                status[t] = "confirmed"
            elif spec.skipped_key(event_id) in self.files:
                status[t] = "skipped"
            else:
                status[t] = "pending"
        return status

    async def run_health_check(self):
        if self.health is not None:
            return self.health
        return HealthReport(healthy=True, bucket_accessible=True, bucket_name=self.bucket)


def all_templates() -> Dict[TemplateType, bytes]:
    return {
        t: make_template_pdf(get_template_spec(t).page_width, get_template_spec(t).page_height)
        for t in TemplateType
    }


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def compositor():
    return PrintableCompositor()


@pytest.fixture
def logo_png():
    return make_logo_png()


@pytest.fixture
def full_store():
    return FakeStore(all_templates())
