"""Remote delivery of merged videos with a bounded fallback chain.

The tiered strategy is tried first, then a raw upload without transform
directives, then an anonymous upload through the public upload profile.
A failure only moves down the chain when it is classified as size- or
synchronicity-related. Any other failure of the primary strategy propagates at
once; any other failure of a fallback ends the chain with every attempt.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from app.core.logging import log_error, log_info, log_warning
from app.core.metrics import DELIVERY_ATTEMPTS_TOTAL
from app.core.storage import S3Storage
from app.modules.merge.exceptions import DeliveryAttemptError, DeliveryError, DeliveryErrorKind
from app.modules.merge.models import FALLBACK_CHAIN, DeliveryStrategy

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"

SIZE_ERROR_CODES = frozenset({
    "EntityTooLarge",
    "MaxMessageLengthExceeded",
    "MaxPostPreDataLengthExceededError",
})
SYNC_ERROR_CODES = frozenset({
    "RequestTimeout",
    "NotImplemented",
})
AUTH_ERROR_CODES = frozenset({
    "AccessDenied",
    "AccountProblem",
    "AllAccessDisabled",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "SignatureDoesNotMatch",
})

# Errors an upload call can raise; everything else is a bug and propagates untouched.
UPLOAD_ERRORS = (BotoCoreError, ClientError, S3UploadFailedError, OSError)

EAGER_DIRECTIVES = {"eager": "format=mp4,video_codec=auto,quality=auto", "eager-async": "true"}
DIRECT_DIRECTIVES = {"format": "mp4", "quality": "auto"}


def classify_delivery_error(exc: BaseException) -> DeliveryErrorKind:
    """Map a storage exception onto the closed set of delivery error kinds."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in SIZE_ERROR_CODES or status == 413:
            return DeliveryErrorKind.SIZE_EXCEEDED
        if code in SYNC_ERROR_CODES or status in (408, 501):
            return DeliveryErrorKind.SYNC_NOT_SUPPORTED
        if code in AUTH_ERROR_CODES or status in (401, 403):
            return DeliveryErrorKind.AUTH_FAILURE
        return DeliveryErrorKind.UNKNOWN
    if isinstance(exc, ConnectionClosedError):
        # The service dropped the connection mid-body
        return DeliveryErrorKind.SIZE_EXCEEDED
    if isinstance(exc, ReadTimeoutError):
        return DeliveryErrorKind.SYNC_NOT_SUPPORTED
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return DeliveryErrorKind.AUTH_FAILURE
    if isinstance(exc, S3UploadFailedError):
        cause = exc.__cause__ or exc.__context__
        if cause is not None:
            return classify_delivery_error(cause)
    return DeliveryErrorKind.UNKNOWN


@dataclass
class DeliveryResult:
    """Where and how an artifact was delivered."""
    strategy: DeliveryStrategy
    public_id: str
    key: str
    url: str
    failed_attempts: list[DeliveryAttemptError] = field(default_factory=list)


class RemoteDeliveryClient:
    """Uploads artifacts to S3-compatible storage."""

    def __init__(self, storage: S3Storage, chunk_size: int = 6_000_000):
        self.storage = storage
        self.chunk_size = chunk_size

    def deliver(self, file_path: Path, public_id: str, strategy: DeliveryStrategy) -> DeliveryResult:
        """Upload `file_path` under `strategy`, falling back on retryable errors.

        Raises:
            DeliveryAttemptError: If the primary strategy fails with a non-retryable error
            DeliveryError: If a fallback was reached and the chain ended without success
        """
        attempts: list[DeliveryAttemptError] = []
        for current in (strategy, *FALLBACK_CHAIN):
            try:
                result = self._upload(current, Path(file_path), public_id)
            except UPLOAD_ERRORS as e:
                kind = classify_delivery_error(e)
                attempt = DeliveryAttemptError(current.value, kind, e)
                attempts.append(attempt)
                DELIVERY_ATTEMPTS_TOTAL.labels(strategy=current.value, outcome=kind.value).inc()
                if not kind.retryable:
                    log_error(logger, "Upload failed with non-retryable error", e, strategy=current.value, kind=kind.value)
                    if len(attempts) == 1:
                        raise attempt from e
                    # A fallback was already running; report the whole chain
                    break
                log_warning(logger, "Upload strategy failed, trying next", strategy=current.value, kind=kind.value, error=str(e))
                continue

            DELIVERY_ATTEMPTS_TOTAL.labels(strategy=current.value, outcome="success").inc()
            result.failed_attempts = attempts
            log_info(logger, "Upload successful", strategy=current.value, url=result.url)
            return result

        log_error(logger, "All upload methods failed", attempts=[str(a) for a in attempts])
        raise DeliveryError(attempts)

    def _upload(self, strategy: DeliveryStrategy, file_path: Path, public_id: str) -> DeliveryResult:
        if strategy is DeliveryStrategy.DIRECT:
            key = self.storage.build_key(public_id)
            self._put(self.storage.client, self.storage.config.bucket, key, file_path, DIRECT_DIRECTIVES)
        elif strategy is DeliveryStrategy.ASYNC_EAGER:
            key = self.storage.build_key(public_id)
            self._put(self.storage.client, self.storage.config.bucket, key, file_path, EAGER_DIRECTIVES)
        elif strategy is DeliveryStrategy.CHUNKED:
            key = self.storage.build_key(public_id)
            self._multipart(key, file_path, EAGER_DIRECTIVES)
        elif strategy is DeliveryStrategy.STREAMED:
            key = self.storage.build_key(public_id)
            self._stream(key, file_path)
        elif strategy is DeliveryStrategy.RAW_FALLBACK:
            public_id = f"{public_id}_raw"
            key = self.storage.build_key(public_id)
            self._put(self.storage.client, self.storage.config.bucket, key, file_path, {})
        else:
            bucket = self.storage.config.public_upload_bucket
            key = self.storage.build_key(public_id)
            self._put(self.storage.unsigned_client, bucket, key, file_path, {})
            return DeliveryResult(strategy, public_id, key, self.storage.get_public_url(key, bucket))

        return DeliveryResult(strategy, public_id, key, self.storage.get_public_url(key))

    def _put(self, client, bucket: str, key: str, file_path: Path, metadata: dict) -> None:
        with open(file_path, "rb") as f:
            client.put_object(
                Bucket=bucket,
                Key=key,
                Body=f,
                ContentType=VIDEO_CONTENT_TYPE,
                Metadata=metadata,
            )

    def _multipart(self, key: str, file_path: Path, metadata: dict) -> None:
        """Resumable-style upload in fixed-size parts."""
        client = self.storage.client
        bucket = self.storage.config.bucket
        upload_id = client.create_multipart_upload(
            Bucket=bucket,
            Key=key,
            ContentType=VIDEO_CONTENT_TYPE,
            Metadata=metadata,
        )["UploadId"]

        parts = []
        try:
            with open(file_path, "rb") as f:
                part_number = 1
                while True:
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    response = client.upload_part(
                        Bucket=bucket,
                        Key=key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=chunk,
                    )
                    parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                    part_number += 1
            client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except UPLOAD_ERRORS:
            try:
                client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
            except UPLOAD_ERRORS as abort_error:
                log_warning(logger, "Could not abort multipart upload", key=key, error=str(abort_error))
            raise

    def _stream(self, key: str, file_path: Path) -> None:
        """Managed transfer reading the file as a stream, no directives."""
        transfer_config = TransferConfig(
            multipart_threshold=self.chunk_size,
            multipart_chunksize=self.chunk_size,
        )
        with open(file_path, "rb") as f:
            self.storage.client.upload_fileobj(
                f,
                self.storage.config.bucket,
                key,
                ExtraArgs={"ContentType": VIDEO_CONTENT_TYPE},
                Config=transfer_config,
            )
