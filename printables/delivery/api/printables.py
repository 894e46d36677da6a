# printables/delivery/api/printables.py
from fastapi import APIRouter, Request, Depends, HTTPException, Query, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.responses import JSONResponse, Response
from printables.delivery.schemas.body import GenerateAllRequest, GenerateRequest, PreviewRequest, RetryRequest
from printables.config.layout import PREVIEWS_PREFIX, STORE_TO_EDITOR_NAMES, build_qr_url, is_back_variant
from printables.config.settings import settings
from printables.domain.models import BatchGenerationResult, classify
from printables.domain.printable_service import NO_QR_ERROR, PreviewError, PrintableService
from typing import Optional
import secrets
import threading
import logging
import traceback
import asyncio
import time

router = APIRouter(prefix="/printables", tags=["printables"])
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

def get_service(request: Request) -> PrintableService:
    service = getattr(request.app.state, "printable_service", None)
    if service is None:
        logger.error("Printable service not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service

async def _guarded(coro, label: str):
    """Run one endpoint body with the shared timeout and error mapping."""
    logger.info(f"=== ENDPOINT START {label} (threads={threading.active_count()}) ===")
    try:
        try:
            result = await asyncio.wait_for(coro, timeout=settings.ENDPOINT_TIMEOUT_SECONDS)
            logger.info(f"=== ENDPOINT DONE {label} ===")
            return result
        except asyncio.TimeoutError:
            logger.error(f"=== ENDPOINT TIMEOUT {label} after {settings.ENDPOINT_TIMEOUT_SECONDS}s ===")
            raise HTTPException(status_code=504, detail="Printable generation timed out")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"=== ENDPOINT ERROR {label}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate printables",
        )

def _qr_url(access_code) -> Optional[str]:
    if access_code is None or access_code == "":
        logger.warning("No access code available - printables will be generated WITHOUT QR codes")
        return None
    return build_qr_url(settings.QR_DOMAIN, access_code)

def _batch_response(batch: BatchGenerationResult, access_code, qr_included: bool, skipped: list) -> dict:
    summary = classify(batch.results)
    # Backs that could not get a QR code count as skipped, not failed
    if not qr_included:
        already_skipped = {s["type"] for s in skipped}
        skipped = skipped + [
            {"type": r.type.value, "reason": "No QR code available"}
            for r in summary.failed
            if is_back_variant(r.type) and r.error == NO_QR_ERROR and r.type.value not in already_skipped
        ]
    skipped_types = {s["type"] for s in skipped}
    return {
        "success": summary.success,
        "partialSuccess": summary.partial_success,
        "eventId": batch.event_id,
        "accessCode": access_code,
        "qrCodeIncluded": qr_included,
        "results": {
            "succeeded": [{"type": r.type.value, "key": r.key} for r in summary.succeeded],
            "failed": [
                {"type": r.type.value, "error": r.error or "Unknown error"}
                for r in summary.failed if r.type.value not in skipped_types
            ],
            "skipped": skipped,
        },
        "errors": batch.errors,
    }

@router.post("/generate", dependencies=[Depends(verify_basic_auth)])
async def generate(request: Request, body: GenerateRequest):
    service = get_service(request)

    async def run():
        health = await service.store.run_health_check()
        if not health.healthy:
            logger.error(f"[{body.event_id}] Pre-flight check failed: {health.errors}")
            return JSONResponse(status_code=400, content={
                "success": False,
                "partialSuccess": False,
                "error": "Pre-flight check failed: missing required assets",
                "healthCheck": {
                    "bucketAccessible": health.bucket_accessible,
                    "missingTemplates": health.templates_missing,
                    "missingFonts": health.fonts_missing,
                },
                "errors": health.errors,
            })

        qr_url = _qr_url(body.access_code)
        logo_bytes = await service.store.get_event_logo(body.event_id)
        batch = await service.generate_from_editor_configs(
            body.event_id,
            body.school_name,
            body.event_date,
            [item.to_item_config() for item in body.items],
            logo_bytes=logo_bytes,
            qr_url=qr_url,
            include_mockups=body.include_mockups,
        )

        skipped = []
        for template_type in body.skipped_items:
            placeholder = await service.store.upload_skipped_placeholder(body.event_id, template_type)
            if placeholder.success:
                skipped.append({"type": template_type.value, "reason": "Skipped by operator"})
        return JSONResponse(status_code=200, content=_batch_response(batch, body.access_code, qr_url is not None, skipped))

    return await _guarded(run(), f"generate {body.event_id}")

@router.post("/generate-all", dependencies=[Depends(verify_basic_auth)])
async def generate_all(request: Request, body: GenerateAllRequest):
    service = get_service(request)

    async def run():
        qr_url = _qr_url(body.access_code)
        logo_bytes = await service.store.get_event_logo(body.event_id)
        batch = await service.generate_all(body.event_id, body.school_name, body.event_date, logo_bytes, qr_url)
        return JSONResponse(status_code=200, content=_batch_response(batch, body.access_code, qr_url is not None, []))

    return await _guarded(run(), f"generate-all {body.event_id}")

@router.post("/retry", dependencies=[Depends(verify_basic_auth)])
async def retry(request: Request, body: RetryRequest):
    service = get_service(request)

    async def run():
        previous = BatchGenerationResult.from_results(body.event_id, [r.to_result() for r in body.previous])
        qr_url = _qr_url(body.access_code)
        logo_bytes = await service.store.get_event_logo(body.event_id)
        batch = await service.retry_failed(
            previous,
            [item.to_item_config() for item in body.items],
            school_name=body.school_name,
            event_date=body.event_date,
            logo_bytes=logo_bytes,
            qr_url=qr_url,
        )
        return JSONResponse(status_code=200, content=_batch_response(batch, body.access_code, qr_url is not None, []))

    return await _guarded(run(), f"retry {body.event_id}")

@router.post("/preview", dependencies=[Depends(verify_basic_auth)])
async def preview(request: Request, body: PreviewRequest):
    service = get_service(request)
    template_type = body.item.type

    async def run():
        logo_bytes = await service.store.get_event_logo(body.event_id)
        try:
            pdf_bytes = await service.generate_single_preview(
                body.event_id,
                body.item.to_item_config(),
                logo_bytes=logo_bytes,
                qr_url=_qr_url(body.access_code),
            )
        except PreviewError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        filename = f"{template_type.value}-preview.pdf"
        if body.delivery == "inline":
            return Response(
                content=pdf_bytes,
                media_type="application/pdf",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )

        stamp = int(time.time() * 1000)
        key = f"{PREVIEWS_PREFIX}/{body.event_id}/{template_type.value}_{stamp}.pdf"
        upload = await service.store.upload_bytes(key, pdf_bytes, "application/pdf")
        if not upload.success:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to store preview")
        return {
            "success": True,
            "type": template_type.value,
            "key": key,
            "url": service.store.get_signed_url(key, settings.PREVIEW_URL_TTL),
            "expiresIn": settings.PREVIEW_URL_TTL,
        }

    return await _guarded(run(), f"preview {body.event_id}/{template_type.value}")

@router.get("/health", dependencies=[Depends(verify_basic_auth)])
async def assets_health(request: Request):
    service = get_service(request)

    async def run():
        report = await service.store.run_health_check()
        return JSONResponse(status_code=200 if report.healthy else 503, content=report.to_dict())

    return await _guarded(run(), "assets health")

@router.get("/status", dependencies=[Depends(verify_basic_auth)])
async def printables_status(request: Request, event_id: str = Query(..., alias="eventId", min_length=1)):
    service = get_service(request)

    async def run():
        statuses = await service.store.get_printables_status(event_id)
        return {
            "eventId": event_id,
            "printables": {STORE_TO_EDITOR_NAMES.get(t, t.value): s for t, s in statuses.items()},
        }

    return await _guarded(run(), f"status {event_id}")
