# printables/domain/printable_service.py
import asyncio
import logging
import os
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import psutil

from printables.config.layout import (
    GENERATION_ORDER,
    LOGO_TYPES,
    MOCKUP_TYPES,
    FontName,
    TemplateType,
    get_date_placement,
    get_qr_placement,
    get_template_spec,
    is_back_variant,
    qr_caption,
    requires_logo,
    supports_qr_code,
)
from printables.domain.models import (
    BatchGenerationResult,
    GenerationResult,
    ItemConfig,
    QrBox,
    classify,
    merge_results,
)
from printables.infrastructure.pdf.compositor import PrintableCompositor
from printables.infrastructure.pdf.fonts import register_font
from printables.infrastructure.qr.qr_code import generate_qr_png
from printables.infrastructure.storage.r2_store import AssetNotFoundError, R2Store

NO_QR_ERROR = "No QR code available: back side needs a QR code"

# Renders one PDF from (template bytes or None, font face name)
Renderer = Callable[[Optional[bytes], str], bytes]

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


class TemplateNotFoundError(LookupError):
    pass


class PreviewError(RuntimeError):
    """A single preview could not be produced."""


def _memory_mb() -> Optional[float]:
    try:
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    except Exception as mem_error:
        logger.warning(f"Could not get memory info: {mem_error}")
        return None


class PrintableService:
    def __init__(self, store: R2Store, compositor: PrintableCompositor, cpu_executor: Optional[ThreadPoolExecutor] = None):
        self.store = store
        self.compositor = compositor
        self.cpu_executor = cpu_executor
        # Written at most once per font; a concurrent first fetch only costs a second download
        self._font_bytes: Dict[FontName, bytes] = {}

    # --- Shared helpers ---

    async def _resolve_font(self, font: FontName) -> str:
        data = self._font_bytes.get(font)
        if data is None:
            try:
                data = await self.store.get_font(font)
                self._font_bytes[font] = data
            except AssetNotFoundError as e:
                logger.warning(f"{e}; falling back to built-in font.")
            except Exception as e:
                logger.warning(f"Could not fetch font '{font.value}' ({type(e).__name__}: {e}); falling back to built-in font.")
        return register_font(font, data)

    async def _build_qr(self, qr_url: Optional[str]) -> Optional[bytes]:
        """Encode the QR image once per batch; failures mean "no QR codes", not an abort."""
        if not qr_url:
            logger.warning("No QR URL available - printables will be generated WITHOUT QR codes.")
            return None
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self.cpu_executor, generate_qr_png, qr_url)
        except Exception as e:
            logger.warning(f"QR code generation failed for {qr_url} ({type(e).__name__}: {e}); continuing without QR codes.")
            return None

    async def _render(self, template_type: TemplateType, render: Renderer) -> bytes:
        spec = get_template_spec(template_type)
        template = await self.store.get_template(template_type)
        if template is None and spec.required:
            raise TemplateNotFoundError(f"Template not found: {template_type.value}. Please upload template to R2.")
        font_name = await self._resolve_font(spec.font)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.cpu_executor, render, template, font_name)

    async def _render_and_upload(self, event_id: str, template_type: TemplateType, render: Renderer) -> GenerationResult:
        """One item, start to finish. Every failure becomes a failed GenerationResult."""
        try:
            pdf_bytes = await self._render(template_type, render)
            upload = await self.store.upload_generated(event_id, template_type, pdf_bytes)
            if not upload.success:
                return GenerationResult(success=False, type=template_type, error=upload.error or "Failed to upload printable")
            logger.info(f"[{event_id}] {template_type.value}: uploaded to {upload.key}")
            return GenerationResult(success=True, type=template_type, key=upload.key)
        except TemplateNotFoundError as e:
            logger.warning(f"[{event_id}] {e}")
            return GenerationResult(success=False, type=template_type, error=str(e))
        except Exception as e:
            logger.error(f"[{event_id}] Error generating {template_type.value}: {e}\n{traceback.format_exc()}")
            return GenerationResult(success=False, type=template_type, error=str(e) or type(e).__name__)

    def _finish(self, event_id: str, results: List[GenerationResult], started: float) -> BatchGenerationResult:
        batch = BatchGenerationResult.from_results(event_id, merge_results([], results))
        summary = classify(batch.results)
        memory_mb = _memory_mb()
        logger.info(
            f"=== COMPLETED Event {event_id}: {len(summary.succeeded)}/{len(batch.results)} succeeded, "
            f"{len(summary.failed)} failed in {time.perf_counter() - started:.2f}s"
            + (f", memory {memory_mb:.1f}MB" if memory_mb is not None else "")
            + " ==="
        )
        return batch

    def _start(self, event_id: str, what: str) -> float:
        memory_mb = _memory_mb()
        logger.info(
            f"=== START {what} for Event {event_id}"
            + (f" (memory {memory_mb:.1f}MB)" if memory_mb is not None else "")
            + " ==="
        )
        return time.perf_counter()

    # --- Fixed-placement path ---

    async def generate_printable(
        self,
        event_id: str,
        template_type: TemplateType,
        school_name: str,
        event_date: str,
        logo_bytes: Optional[bytes] = None,
        qr_png: Optional[bytes] = None,
        qr_caption_text: Optional[str] = None,
    ) -> GenerationResult:
        """Generate and upload one printable from the static placements."""
        template_type = TemplateType(template_type)
        if is_back_variant(template_type):
            if not qr_png:
                return GenerationResult(success=False, type=template_type, error=NO_QR_ERROR)
        else:
            if not school_name:
                return GenerationResult(success=False, type=template_type, error="School name is required")
            if get_date_placement(template_type) is not None and not event_date:
                return GenerationResult(success=False, type=template_type, error="Event date is required")

        def render(template: Optional[bytes], font_name: str) -> bytes:
            return self.compositor.compose_fixed(
                template_type,
                template,
                school_name,
                event_date,
                font_name,
                qr_png=qr_png if supports_qr_code(template_type) else None,
                qr_caption=qr_caption_text,
                logo_bytes=logo_bytes if requires_logo(template_type) else None,
            )

        return await self._render_and_upload(event_id, template_type, render)

    async def generate_all(
        self,
        event_id: str,
        school_name: str,
        event_date: str,
        logo_bytes: Optional[bytes] = None,
        qr_url: Optional[str] = None,
    ) -> BatchGenerationResult:
        """Generate every printable and mockup for an event; one failure never stops the rest."""
        started = self._start(event_id, "generate_all")
        qr_png = await self._build_qr(qr_url)
        caption = qr_caption(qr_url) if qr_png else None

        results = await asyncio.gather(*[
            self.generate_printable(event_id, t, school_name, event_date, logo_bytes, qr_png, caption)
            for t in GENERATION_ORDER
        ])
        return self._finish(event_id, list(results), started)

    async def regenerate_logo_printables(
        self,
        event_id: str,
        school_name: str,
        event_date: str,
        logo_bytes: bytes,
    ) -> List[GenerationResult]:
        """Only the printables that carry the school logo (after a logo change)."""
        results = await asyncio.gather(*[
            self.generate_printable(event_id, t, school_name, event_date, logo_bytes)
            for t in LOGO_TYPES
        ])
        return list(results)

    # --- Editor path ---

    def _editor_renderer(
        self,
        config: ItemConfig,
        qr_png: Optional[bytes],
        caption: Optional[str],
        logo_bytes: Optional[bytes],
    ) -> Renderer:
        template_type = config.type
        qr_position = config.qr_position
        if qr_position is None and is_back_variant(template_type):
            default = get_qr_placement(template_type)
            qr_position = QrBox(x=default.x, y=default.y, size=default.size)

        def render(template: Optional[bytes], font_name: str) -> bytes:
            return self.compositor.compose_from_editor_state(
                template_type,
                template,
                config.text_elements,
                font_name,
                qr_position=qr_position,
                qr_png=qr_png,
                qr_caption=caption,
                logo_bytes=logo_bytes if requires_logo(template_type) else None,
            )

        return render

    async def generate_item(
        self,
        event_id: str,
        config: ItemConfig,
        qr_png: Optional[bytes] = None,
        caption: Optional[str] = None,
        logo_bytes: Optional[bytes] = None,
    ) -> GenerationResult:
        template_type = TemplateType(config.type)
        if is_back_variant(template_type) and not qr_png:
            return GenerationResult(success=False, type=template_type, error=NO_QR_ERROR)
        render = self._editor_renderer(config, qr_png, caption, logo_bytes)
        return await self._render_and_upload(event_id, template_type, render)

    async def generate_from_editor_configs(
        self,
        event_id: str,
        school_name: str,
        event_date: str,
        item_configs: Sequence[ItemConfig],
        logo_bytes: Optional[bytes] = None,
        qr_url: Optional[str] = None,
        include_mockups: bool = False,
    ) -> BatchGenerationResult:
        started = self._start(event_id, f"generate_from_editor_configs ({len(item_configs)} items)")
        qr_png = await self._build_qr(qr_url)
        caption = qr_caption(qr_url) if qr_png else None

        configs: Dict[TemplateType, ItemConfig] = {}
        for config in item_configs:
            if config.type in configs:
                logger.warning(f"[{event_id}] Duplicate config for {config.type.value}, using the last one.")
            configs[config.type] = config

        tasks = [self.generate_item(event_id, c, qr_png, caption, logo_bytes) for c in configs.values()]
        if include_mockups:
            tasks += [
                self.generate_printable(event_id, t, school_name, event_date)
                for t in MOCKUP_TYPES if t not in configs
            ]
        results = await asyncio.gather(*tasks)
        return self._finish(event_id, list(results), started)

    async def retry_failed(
        self,
        previous: BatchGenerationResult,
        item_configs: Sequence[ItemConfig],
        school_name: Optional[str] = None,
        event_date: Optional[str] = None,
        logo_bytes: Optional[bytes] = None,
        qr_url: Optional[str] = None,
    ) -> BatchGenerationResult:
        """Regenerate only the failed items of an earlier batch and merge by type.

        Failed types with an editor config are retried through the editor
        path. Without a config they are retried from the static placements
        when school name and date are given, otherwise the earlier failure is
        kept.
        """
        event_id = previous.event_id
        failed = set(previous.failed_types)
        if not failed:
            logger.info(f"[{event_id}] Nothing to retry.")
            return BatchGenerationResult.from_results(event_id, merge_results(previous.results, []))

        started = self._start(event_id, f"retry_failed ({len(failed)} items)")
        qr_png = await self._build_qr(qr_url)
        caption = qr_caption(qr_url) if qr_png else None
        configs = {c.type: c for c in item_configs if c.type in failed}

        tasks = []
        for template_type in GENERATION_ORDER:
            if template_type not in failed:
                continue
            if template_type in configs:
                tasks.append(self.generate_item(event_id, configs[template_type], qr_png, caption, logo_bytes))
            elif school_name and event_date:
                tasks.append(self.generate_printable(
                    event_id, template_type, school_name, event_date, logo_bytes, qr_png, caption,
                ))
            else:
                logger.warning(f"[{event_id}] No config to retry {template_type.value}, keeping earlier failure.")

        retried = await asyncio.gather(*tasks)
        return self._finish(event_id, merge_results(previous.results, list(retried)), started)

    async def generate_single_preview(
        self,
        event_id: str,
        item_config: ItemConfig,
        logo_bytes: Optional[bytes] = None,
        qr_url: Optional[str] = None,
    ) -> bytes:
        """Render one item for download; nothing is uploaded."""
        template_type = TemplateType(item_config.type)
        qr_png = await self._build_qr(qr_url)
        if is_back_variant(template_type) and not qr_png:
            raise PreviewError(NO_QR_ERROR)
        caption = qr_caption(qr_url) if qr_png else None
        render = self._editor_renderer(item_config, qr_png, caption, logo_bytes)
        try:
            pdf_bytes = await self._render(template_type, render)
        except TemplateNotFoundError as e:
            raise PreviewError(str(e)) from e
        logger.info(f"[{event_id}] Preview for {template_type.value} rendered ({len(pdf_bytes)} bytes).")
        return pdf_bytes

    # --- Utilities ---

    async def check_templates_availability(self) -> Tuple[List[TemplateType], List[TemplateType]]:
        available: List[TemplateType] = []
        missing: List[TemplateType] = []
        for template_type in GENERATION_ORDER:
            if await self.store.template_exists(template_type):
                available.append(template_type)
            else:
                missing.append(template_type)
        return available, missing
