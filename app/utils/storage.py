"""
Avatar storage in S3. Uploads are retried a bounded number of times with a
fixed backoff; failures are logged and reported in the result instead of
propagating.
"""
import io
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


@dataclass
class UploadResult:
    url: Optional[str] = None
    key: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.url is not None


class AvatarStorage:
    def __init__(
        self,
        client,
        bucket: str,
        region: str,
        prefix: str = "profiles",
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "AvatarStorage":
        # Retries are handled here so botocore gets a single attempt per call
        config = Config(
            connect_timeout=settings.S3_TIMEOUT_SECONDS,
            read_timeout=settings.S3_TIMEOUT_SECONDS,
            retries={"max_attempts": 1, "mode": "standard"},
        )
        client = boto3.client("s3", region_name=settings.S3_REGION, config=config)
        return cls(
            client,
            bucket=settings.S3_BUCKET_NAME,
            region=settings.S3_REGION,
            prefix=settings.S3_AVATAR_PREFIX,
            max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
            backoff_seconds=settings.UPLOAD_RETRY_BACKOFF_SECONDS,
        )

    def url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        base = self.url_for("")
        if not url or not url.startswith(base):
            return None
        return url[len(base):] or None

    def upload_avatar(self, user_id: str, data: bytes, content_type: str) -> UploadResult:
        extension = ALLOWED_IMAGE_TYPES.get(content_type, "bin")
        key = f"{self.prefix}/{user_id}/{uuid.uuid4().hex}.{extension}"
        result = UploadResult(key=key)

        for attempt in range(1, self.max_attempts + 1):
            result.attempts = attempt
            try:
                self.client.put_object(
                    Body=io.BytesIO(data),
                    Bucket=self.bucket,
                    Key=key,
                    ContentType=content_type,
                )
            except (ClientError, BotoCoreError) as e:
                result.error = str(e)
                logger.warning(f"Avatar upload attempt {attempt}/{self.max_attempts} failed: {str(e)}")
                if attempt < self.max_attempts:
                    self._sleep(self.backoff_seconds)
                continue
            result.url = self.url_for(key)
            result.error = None
            return result

        logger.error(f"Failed to upload avatar for user {user_id}: {result.error}")
        return result

    def delete_avatar(self, url: Optional[str]) -> bool:
        """Best-effort removal of a previously uploaded avatar."""
        key = self.key_from_url(url)
        if key is None:
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete avatar {key}: {str(e)}")
            return False
        return True
