from __future__ import annotations

import mimetypes
import re
import secrets
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import quote

import boto3
import jwt
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import AuthorizationError, NotFoundError, StorageError

LOCAL_BUCKET = "local"

_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/]+")


def normalize_key(key: str) -> str:
    """Strip leading slashes and reject traversal or unexpected characters."""
    normalized = re.sub(r"/{2,}", "/", str(key or "").strip().lstrip("/"))
    if not normalized:
        raise StorageError("invalid_storage_key:empty")
    if ".." in normalized.split("/"):
        raise StorageError("invalid_storage_key:traversal")
    if not _KEY_ALLOWED_RE.fullmatch(normalized):
        raise StorageError("invalid_storage_key:characters")
    return normalized


@dataclass(frozen=True, slots=True)
class Locator:
    """Internal (bucket, key) reference persisted on video records.

    Serialised as ``"<bucket>,<key>"``; never a resolvable URL.
    """

    bucket: str
    key: str

    @classmethod
    def parse(cls, raw: str | None) -> "Locator | None":
        if not raw:
            return None
        bucket, sep, key = raw.partition(",")
        if not sep or not bucket or not key:
            return None
        return cls(bucket=bucket, key=key)

    def __str__(self) -> str:
        return f"{self.bucket},{self.key}"


class Storage(ABC):
    bucket: str

    @abstractmethod
    def put_file(self, key: str, path: Path, *, content_type: str) -> Locator: ...

    @abstractmethod
    def presign_get(self, key: str, *, expires_s: int, bucket: str | None = None) -> str: ...

    @abstractmethod
    def list_keys(self, prefix: str = "") -> Iterable[str]: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class LocalStorage(Storage):
    """Filesystem-backed object store suitable for development.

    Signed links point back at this API and carry a short-lived JWT naming the
    bucket and key, so retrieval is verified the same way an S3 presigned URL is.
    """

    def __init__(
        self,
        base_path: Path,
        *,
        secret: str,
        public_base_url: str,
        algorithm: str = "HS256",
        bucket: str = LOCAL_BUCKET,
    ):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.bucket = bucket
        self._secret = secret
        self._algorithm = algorithm
        self._public_base_url = public_base_url.rstrip("/")

    def _resolve(self, key: str) -> Path:
        root = self.base_path.resolve()
        path = (root / normalize_key(key)).resolve()
        if root not in path.parents:
            raise StorageError("invalid_storage_key:outside_root")
        return path

    def put_file(self, key: str, path: Path, *, content_type: str) -> Locator:
        key = normalize_key(key)
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)
        except OSError as exc:
            raise StorageError(f"local_put_failed:{exc}") from exc
        return Locator(bucket=self.bucket, key=key)

    def presign_get(self, key: str, *, expires_s: int, bucket: str | None = None) -> str:
        if bucket is not None and bucket != self.bucket:
            raise StorageError(f"unknown_bucket:{bucket}")
        key = normalize_key(key)
        issued_at = int(time.time())
        claims = {
            "bkt": self.bucket,
            "key": key,
            "iat": issued_at,
            "exp": issued_at + int(expires_s),
            "nonce": secrets.token_hex(8),
        }
        try:
            token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        except jwt.PyJWTError as exc:
            raise StorageError(f"link_signing_failed:{exc}") from exc
        return f"{self._public_base_url}/v1/objects/{quote(key)}?token={token}"

    def open_signed(self, key: str, token: str) -> tuple[Path, str]:
        """Verify a signed link token and return the object path and media type."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthorizationError("link_expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthorizationError("invalid_link_signature") from exc
        if claims.get("bkt") != self.bucket or claims.get("key") != normalize_key(key):
            raise AuthorizationError("link_scope_mismatch")
        path = self._resolve(key)
        if not path.is_file():
            raise NotFoundError("object_not_found")
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return path, media_type

    def list_keys(self, prefix: str = "") -> Iterable[str]:
        root = self.base_path.resolve()
        base = root / prefix if prefix else root
        if not base.exists():
            return []
        return sorted(p.relative_to(root).as_posix() for p in base.rglob("*") if p.is_file())

    def delete(self, key: str) -> None:
        try:
            self._resolve(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"local_delete_failed:{exc}") from exc


class S3Storage(Storage):
    """Thin wrapper over a boto3 S3 client; every SDK failure surfaces as StorageError."""

    def __init__(
        self,
        bucket: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ):
        self.bucket = bucket
        if client is None:
            client_kwargs: dict[str, Any] = {
                "config": BotoConfig(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "standard"},
                    connect_timeout=5,
                    read_timeout=60,
                ),
            }
            if region_name:
                client_kwargs["region_name"] = region_name
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            if access_key_id and secret_access_key:
                client_kwargs["aws_access_key_id"] = access_key_id
                client_kwargs["aws_secret_access_key"] = secret_access_key
            try:
                client = boto3.client("s3", **client_kwargs)
            except (BotoCoreError, Boto3Error) as exc:  # pragma: no cover - misconfiguration
                raise StorageError(f"s3_client_init_failed:{exc}") from exc
        self.client = client

    def put_file(self, key: str, path: Path, *, content_type: str) -> Locator:
        key = normalize_key(key)
        try:
            self.client.upload_file(str(path), self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError, Boto3Error) as exc:
            raise StorageError(f"s3_put_failed:{exc}") from exc
        return Locator(bucket=self.bucket, key=key)

    def presign_get(self, key: str, *, expires_s: int, bucket: str | None = None) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket or self.bucket, "Key": normalize_key(key)},
                ExpiresIn=int(expires_s),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"s3_presign_failed:{exc}") from exc

    def list_keys(self, prefix: str = "") -> Iterable[str]:
        keys: list[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"s3_list_failed:{exc}") from exc
        return keys

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=normalize_key(key))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"s3_delete_failed:{exc}") from exc


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(
            base_path=Path(settings.local_storage_base_path),
            secret=settings.secrets.jwt_secret,
            public_base_url=settings.public_base_url,
            algorithm=settings.jwt_algorithm,
        )
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("TUBELY_S3_BUCKET must be set for the s3 storage backend.")
        return S3Storage(
            settings.s3_bucket,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.secrets.aws_access_key_id,
            secret_access_key=settings.secrets.aws_secret_access_key,
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "S3Storage",
    "Locator",
    "LOCAL_BUCKET",
    "normalize_key",
    "get_storage",
]
