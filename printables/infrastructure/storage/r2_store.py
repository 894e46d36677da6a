# printables/infrastructure/storage/r2_store.py
"""
Asset store for printable templates, fonts and generated files.

Talks to the Cloudflare R2 assets bucket through boto3's S3 client. boto3 is
blocking, so every request runs on the I/O executor handed to the store.
"""
import asyncio
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from printables.config.layout import (
    FONT_FILENAMES,
    FONTS_PREFIX,
    GENERATION_ORDER,
    FontName,
    TemplateType,
    event_logo_folder,
    get_template_spec,
    is_mockup,
)
from printables.config.settings import Settings

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
LOGO_EXTENSIONS = ("png", "jpg", "jpeg", "webp")

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [R2] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


class StoreConfigurationError(RuntimeError):
    """The store cannot work at all (missing credentials or bucket)."""


class AssetNotFoundError(LookupError):
    pass


@dataclass
class UploadResult:
    success: bool
    key: str
    error: Optional[str] = None


@dataclass
class HealthReport:
    healthy: bool
    bucket_accessible: bool
    bucket_name: str
    templates_found: List[str] = field(default_factory=list)
    templates_missing: List[str] = field(default_factory=list)
    fonts_found: List[str] = field(default_factory=list)
    fonts_missing: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "bucketAccessible": self.bucket_accessible,
            "bucketName": self.bucket_name,
            "templatesFound": self.templates_found,
            "templatesMissing": self.templates_missing,
            "fontsFound": self.fonts_found,
            "fontsMissing": self.fonts_missing,
            "errors": self.errors,
        }


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


def font_key(font: FontName) -> str:
    return f"{FONTS_PREFIX}/{FONT_FILENAMES[FontName(font)]}"


class R2Store:
    def __init__(self, settings: Settings, executor: Optional[ThreadPoolExecutor] = None, client=None):
        missing = [
            name for name in ("R2_ENDPOINT", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_ASSETS_BUCKET_NAME")
            if not getattr(settings, name)
        ]
        if missing:
            raise StoreConfigurationError(
                f"R2 configuration is incomplete, missing: {', '.join(missing)}. "
                "The assets bucket is required for printables generation."
            )
        self.bucket = settings.R2_ASSETS_BUCKET_NAME
        self.executor = executor
        self.max_attempts = max(1, settings.UPLOAD_MAX_ATTEMPTS)
        self.base_delay = settings.UPLOAD_RETRY_BASE_DELAY
        self.signed_url_ttl = settings.SIGNED_URL_TTL
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=settings.R2_ENDPOINT,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
                region_name="auto",
                # upload_generated owns the retry policy; one HTTP call per attempt
                config=BotoConfig(signature_version="s3v4", retries={"total_max_attempts": 1}),
            )
        self.client = client

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, partial(fn, *args, **kwargs))

    # --- Blocking primitives (run on the executor) ---

    def _head(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise

    def _get(self, key: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def _put(self, key: str, data: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None) -> None:
        kwargs = dict(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        if metadata:
            kwargs["Metadata"] = metadata
        self.client.put_object(**kwargs)

    # --- Generic file operations ---

    async def file_exists(self, key: str) -> bool:
        return await self._run(self._head, key)

    async def get_file_bytes(self, key: str) -> Optional[bytes]:
        return await self._run(self._get, key)

    async def upload_bytes(self, key: str, data: bytes, content_type: str) -> UploadResult:
        try:
            await self._run(self._put, key, data, content_type)
            return UploadResult(success=True, key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Upload of {key} failed: {e}")
            return UploadResult(success=False, key=key, error=str(e))

    async def delete_file(self, key: str) -> bool:
        try:
            await self._run(self.client.delete_object, Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Delete of {key} failed: {e}")
            return False

    async def copy_file(self, source_key: str, dest_key: str) -> bool:
        try:
            await self._run(
                self.client.copy_object,
                Bucket=self.bucket,
                Key=dest_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Copy {source_key} -> {dest_key} failed: {e}")
            return False

    async def move_file(self, source_key: str, dest_key: str) -> bool:
        if not await self.copy_file(source_key, dest_key):
            return False
        return await self.delete_file(source_key)

    def get_signed_url(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds or self.signed_url_ttl,
        )

    # --- Templates and fonts ---

    async def get_template(self, template_type: TemplateType) -> Optional[bytes]:
        """Template bytes, or None when the template has not been uploaded yet."""
        key = get_template_spec(template_type).template_key
        data = await self.get_file_bytes(key)
        if data is None:
            logger.warning(f"Template not found: {key}")
        return data

    async def template_exists(self, template_type: TemplateType) -> bool:
        return await self.file_exists(get_template_spec(template_type).template_key)

    async def get_template_signed_url(self, template_type: TemplateType, ttl_seconds: Optional[int] = None) -> Optional[str]:
        key = get_template_spec(template_type).template_key
        if not await self.file_exists(key):
            return None
        return self.get_signed_url(key, ttl_seconds)

    async def upload_template(self, template_type: TemplateType, data: bytes) -> UploadResult:
        return await self.upload_bytes(get_template_spec(template_type).template_key, data, "application/pdf")

    async def get_font(self, font: FontName) -> bytes:
        key = font_key(font)
        data = await self.get_file_bytes(key)
        if data is None:
            raise AssetNotFoundError(f"Font not found: {key}")
        return data

    async def upload_font(self, font: FontName, data: bytes) -> UploadResult:
        key = font_key(font)
        content_type = "font/otf" if key.endswith(".otf") else "font/ttf"
        return await self.upload_bytes(key, data, content_type)

    # --- Generated printables ---

    async def upload_generated(self, event_id: str, template_type: TemplateType, data: bytes) -> UploadResult:
        """Overwrite the event's printable, retrying with exponential backoff."""
        template_type = TemplateType(template_type)
        key = get_template_spec(template_type).output_key(event_id)
        metadata = {
            "eventId": str(event_id),
            "printableType": template_type.value,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._run(self._put, key, data, "application/pdf", metadata)
                if attempt > 1:
                    logger.info(f"Upload succeeded on attempt {attempt} for {template_type.value}")
                return UploadResult(success=True, key=key)
            except (ClientError, BotoCoreError) as e:
                last_error = e
                logger.warning(f"Upload attempt {attempt}/{self.max_attempts} failed for {template_type.value}: {e}")
                if attempt < self.max_attempts:
                    delay = self.base_delay * (2 ** (attempt - 1))
                    logger.info(f"Retrying in {delay:.1f}s...")
                    await asyncio.sleep(delay)

        logger.error(
            f"All {self.max_attempts} upload attempts failed for {template_type.value} "
            f"(event: {event_id}): {last_error}"
        )
        return UploadResult(
            success=False,
            key=key,
            error=f"Upload failed after {self.max_attempts} attempts: {last_error}",
        )

    async def get_printable_url(self, event_id: str, template_type: TemplateType, ttl_seconds: Optional[int] = None) -> Optional[str]:
        key = get_template_spec(template_type).output_key(event_id)
        if await self.file_exists(key):
            return self.get_signed_url(key, ttl_seconds)
        return None

    async def upload_skipped_placeholder(self, event_id: str, template_type: TemplateType) -> UploadResult:
        template_type = TemplateType(template_type)
        key = get_template_spec(template_type).skipped_key(event_id)
        placeholder = {
            "status": "skipped",
            "skippedAt": datetime.now(timezone.utc).isoformat(),
            "type": template_type.value,
        }
        result = await self.upload_bytes(key, json.dumps(placeholder, indent=2).encode("utf-8"), "application/json")
        if result.success:
            logger.info(f"Uploaded skipped placeholder for {template_type.value} (event: {event_id})")
        return result

    async def get_printables_status(self, event_id: str) -> Dict[TemplateType, str]:
        """confirmed (PDF exists), skipped (placeholder exists) or pending, per printable."""
        status: Dict[TemplateType, str] = {}
        for template_type in GENERATION_ORDER:
            if is_mockup(template_type):
                continue
            spec = get_template_spec(template_type)
            if await self.file_exists(spec.output_key(event_id)):
                status[template_type] = "confirmed"
            elif await self.file_exists(spec.skipped_key(event_id)):
                status[template_type] = "skipped"
            else:
                status[template_type] = "pending"
        return status

    async def get_event_logo(self, event_id: str) -> Optional[bytes]:
        folder = event_logo_folder(event_id)
        for ext in LOGO_EXTENSIONS:
            key = f"{folder}/logo.{ext}"
            if await self.file_exists(key):
                return await self.get_file_bytes(key)
        return None

    # --- Health ---

    async def run_health_check(self) -> HealthReport:
        """Check bucket access and the presence of every template and font (HEAD only)."""
        report = HealthReport(healthy=False, bucket_accessible=False, bucket_name=self.bucket)
        started = time.perf_counter()

        try:
            await self._run(self.client.head_bucket, Bucket=self.bucket)
            report.bucket_accessible = True
        except (ClientError, BotoCoreError) as e:
            report.errors.append(f"Bucket access error: {e}")

        required_missing: List[str] = []
        for template_type in GENERATION_ORDER:
            spec = get_template_spec(template_type)
            try:
                exists = await self._run(self._head, spec.template_key)
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Could not check {spec.template_key}: {e}")
                exists = False
            if exists:
                report.templates_found.append(template_type.value)
            else:
                report.templates_missing.append(template_type.value)
                if spec.required:
                    required_missing.append(template_type.value)

        if required_missing:
            report.errors.append(f"Missing required templates: {', '.join(required_missing)}")

        for font in FontName:
            try:
                exists = await self._run(self._head, font_key(font))
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Could not check {font_key(font)}: {e}")
                exists = False
            (report.fonts_found if exists else report.fonts_missing).append(font.value)

        if report.fonts_missing:
            report.errors.append(f"Missing fonts: {', '.join(report.fonts_missing)}")

        report.healthy = report.bucket_accessible and not required_missing and not report.fonts_missing
        logger.info(
            f"Health check: healthy={report.healthy}, templates missing={report.templates_missing}, "
            f"fonts missing={report.fonts_missing} ({time.perf_counter() - started:.2f}s)"
        )
        return report
