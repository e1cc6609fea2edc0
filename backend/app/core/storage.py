"""S3-compatible object storage access.

Wraps the boto3 clients used by the delivery client (signed and anonymous
uploads) and the retention sweeper (listing and deletion). Errors from the
service are raised as botocore exceptions; callers decide what they mean.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import boto3
from botocore import UNSIGNED
from botocore.config import Config as BotoConfig

from app.core.config import Settings, settings


@dataclass
class StorageConfig:
    """Storage configuration."""
    bucket: str
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    folder: str = "merged-videos"
    unsigned_bucket: str = ""
    cdn_domain: Optional[str] = None
    cdn_enabled: bool = False

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "StorageConfig":
        return cls(
            bucket=source.STORAGE_BUCKET,
            region=source.STORAGE_REGION,
            access_key=source.STORAGE_ACCESS_KEY,
            secret_key=source.STORAGE_SECRET_KEY,
            endpoint_url=source.STORAGE_ENDPOINT_URL,
            use_ssl=source.STORAGE_USE_SSL,
            folder=source.STORAGE_FOLDER,
            unsigned_bucket=source.UNSIGNED_UPLOAD_BUCKET,
            cdn_domain=source.CDN_DOMAIN,
            cdn_enabled=source.CDN_ENABLED,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    @property
    def public_upload_bucket(self) -> str:
        """Bucket that accepts anonymous writes for the unsigned fallback."""
        return self.unsigned_bucket or self.bucket


@dataclass
class StoredObject:
    """A delivered artifact as reported by the storage listing."""
    key: str
    last_modified: datetime
    size: int = 0


class S3Storage:
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig, client=None, unsigned_client=None):
        self.config = config
        self._client = client
        self._unsigned_client = unsigned_client

    def _client_kwargs(self) -> dict:
        client_kwargs = {
            "service_name": "s3",
            "region_name": self.config.region or "us-east-1",
        }
        # For MinIO or other S3-compatible storage
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url
            if not self.config.use_ssl:
                client_kwargs["use_ssl"] = False
        return client_kwargs

    @property
    def client(self):
        """Signed client, created on first use."""
        if self._client is None:
            client_kwargs = self._client_kwargs()
            client_kwargs["aws_access_key_id"] = self.config.access_key
            client_kwargs["aws_secret_access_key"] = self.config.secret_key
            if self.config.endpoint_url:
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
            self._client = boto3.client(**client_kwargs)
        return self._client

    @property
    def unsigned_client(self):
        """Anonymous client for the public upload profile."""
        if self._unsigned_client is None:
            client_kwargs = self._client_kwargs()
            client_kwargs["config"] = BotoConfig(
                signature_version=UNSIGNED,
                s3={"addressing_style": "path"} if self.config.endpoint_url else {},
            )
            self._unsigned_client = boto3.client(**client_kwargs)
        return self._unsigned_client

    def build_key(self, public_id: str, extension: str = "mp4") -> str:
        """Storage key for a delivered artifact."""
        return f"{self.config.folder}/{public_id}.{extension}"

    def get_public_url(self, key: str, bucket: Optional[str] = None) -> str:
        """Publicly resolvable URL for a delivered object."""
        if self.config.cdn_enabled and self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"
        bucket = bucket or self.config.bucket
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{bucket}/{key}"
        region = self.config.region or "us-east-1"
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"

    def list_objects_before(
        self,
        cutoff: datetime,
        limit: Optional[int] = None,
    ) -> list[StoredObject]:
        """List artifacts under the storage folder last modified before `cutoff`.

        Results are ordered newest first and truncated to `limit`.
        """
        paginator = self.client.get_paginator("list_objects_v2")
        matched: list[StoredObject] = []
        for page in paginator.paginate(Bucket=self.config.bucket, Prefix=f"{self.config.folder}/"):
            for obj in page.get("Contents", []):
                if obj["LastModified"] < cutoff:
                    matched.append(
                        StoredObject(
                            key=obj["Key"],
                            last_modified=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
        matched.sort(key=lambda o: o.last_modified, reverse=True)
        if limit is not None:
            matched = matched[:limit]
        return matched

    def delete(self, key: str) -> None:
        """Delete an artifact by key."""
        self.client.delete_object(Bucket=self.config.bucket, Key=key)


_instance: Optional[S3Storage] = None


def get_storage() -> S3Storage:
    """Get the default storage instance."""
    global _instance
    if _instance is None:
        _instance = S3Storage(StorageConfig.from_settings())
    return _instance
