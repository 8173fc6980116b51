from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from inboxsync.domain.errors import ContentStoreError
from inboxsync.infrastructure.settings import Settings, get_settings

@dataclass(frozen=True)
class S3StoreConfig:
    endpoint: Optional[str]
    region: str
    access_key: Optional[str]
    secret_key: Optional[str]
    bucket: str
    prefix: str = ""
    use_ssl: bool = True
    force_path_style: bool = True

class S3ContentStore:
    """Write-once blob storage for message bodies and attachment bytes (S3, R2, MinIO)."""

    def __init__(self, cfg: S3StoreConfig, client=None) -> None:
        self.cfg = cfg
        if client is None:
            s3_cfg = Config(s3={"addressing_style": "path"} if cfg.force_path_style else {})
            client = boto3.client(
                "s3",
                endpoint_url=cfg.endpoint,
                aws_access_key_id=cfg.access_key,
                aws_secret_access_key=cfg.secret_key,
                region_name=cfg.region,
                use_ssl=cfg.use_ssl,
                config=s3_cfg,
            )
        self.client = client

    def _object_key(self, key: str) -> str:
        prefix = self.cfg.prefix.strip("/")
        return f"{prefix}/{key}" if prefix else key

    def put(self, key: str, data: bytes, content_type: str) -> str:
        object_key = self._object_key(key)
        try:
            self.client.put_object(
                Bucket=self.cfg.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise ContentStoreError(object_key, str(e)) from e

        logger.debug(f"Stored s3://{self.cfg.bucket}/{object_key} ({len(data)} bytes)")
        return object_key

def s3_store_from_settings(settings: Settings | None = None) -> S3ContentStore:
    settings = settings or get_settings()
    cfg = S3StoreConfig(
        endpoint=settings.s3_endpoint,
        region=settings.s3_region,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
        bucket=settings.s3_bucket,
        prefix=settings.s3_prefix,
        use_ssl=settings.s3_use_ssl,
        force_path_style=settings.s3_force_path_style,
    )
    return S3ContentStore(cfg)
