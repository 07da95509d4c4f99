"""Audio upload to Cloudflare R2, with an inline data-URL fallback."""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from uuid import UUID

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from guardian import config
from guardian.errors import Unavailable

logger = logging.getLogger(__name__)

# Retryable S3 error codes
_RETRYABLE_CODES = {"RequestTimeout", "ServiceUnavailable", "ThrottlingException", "Throttling", "SlowDown"}


@dataclass(frozen=True)
class StoredAudio:
    url: str
    external_ref: str | None


class AudioUploader:
    """Stores voice messages in R2 using the S3-compatible API."""

    def __init__(self) -> None:
        self.session = aioboto3.Session()
        self.endpoint = config.settings.R2_ENDPOINT
        self.access_key = config.settings.R2_ACCESS_KEY
        self.secret_key = config.settings.R2_SECRET_KEY
        self.bucket = config.settings.R2_AUDIO_BUCKET
        self.public_url = config.settings.R2_PUBLIC_URL.rstrip("/")

    def configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key)

    async def store(self, room_id: UUID, data: bytes, mime_type: str) -> StoredAudio:
        """
        Persist an audio clip and return where clients can fetch it.

        Without R2 credentials the clip is embedded as a base64 data URL.

        Args:
            room_id: Room the clip belongs to (used as key prefix)
            data: Raw audio bytes
            mime_type: Content type reported by the client

        Returns:
            StoredAudio with the URL and the storage key (None when inlined)
        """
        if not self.configured():
            logger.info("audio: R2 not configured, inlining %d bytes as data URL", len(data))
            encoded = base64.b64encode(data).decode("ascii")
            return StoredAudio(url=f"data:{mime_type};base64,{encoded}", external_ref=None)

        extension = mimetypes.guess_extension(mime_type) or ".bin"
        key = f"rooms/{room_id}/audio/{uuid.uuid4()}{extension}"
        await self._put(key, data, mime_type)
        url = f"{self.public_url}/{key}" if self.public_url else f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return StoredAudio(url=url, external_ref=key)

    async def _put(self, key: str, data: bytes, mime_type: str, max_retries: int = 1) -> None:
        """Upload with retry on transient failures."""
        for attempt in range(max_retries + 1):
            try:
                async with self.session.client(
                    "s3",
                    endpoint_url=self.endpoint,
                    aws_access_key_id=self.access_key,
                    aws_secret_access_key=self.secret_key,
                ) as s3:
                    await s3.put_object(
                        Bucket=self.bucket,
                        Key=key,
                        Body=data,
                        ContentType=mime_type,
                    )
                return
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "")
                if error_code in _RETRYABLE_CODES and attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("audio: R2 upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                    await asyncio.sleep(wait_time)
                else:
                    logger.error("audio: R2 upload of %s failed: %s", key, e)
                    raise Unavailable("Audio storage is temporarily unavailable.") from e
            except BotoCoreError as e:
                # Network errors, timeouts, etc.
                if attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("audio: R2 upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                    await asyncio.sleep(wait_time)
                else:
                    logger.error("audio: R2 upload of %s failed: %s", key, e)
                    raise Unavailable("Audio storage is temporarily unavailable.") from e


audio_uploader = AudioUploader()
