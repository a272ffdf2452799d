from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from .store import StoreReadError, StoreWriteError


# Environment variable names for convenience configuration
ENV_BUCKET = "REANIMATOR_S3_BUCKET"
ENV_PREFIX = "REANIMATOR_S3_PREFIX"
ENV_FERNET_KEY = "REANIMATOR_FERNET_KEY"
ENV_REGION = "REANIMATOR_S3_REGION"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


@dataclass
class S3Location:
    bucket: str
    prefix: str

    def object_key(self, key: str) -> str:
        return f"{self.prefix}{key}"


class S3KeyValueStore:
    """
    S3-backed key-value store, one object per key, encrypted at rest using Fernet.

    Usage
    - Provide an S3 bucket, an optional key prefix and a Fernet key (from env or injected).
    - `get(key)` returns the decrypted text, or None if the object does not exist.
    - `set(key, value)` encrypts and overwrites the object.

    Environment variables (optional)
    - `REANIMATOR_S3_BUCKET`: S3 bucket holding the objects
    - `REANIMATOR_S3_PREFIX`: key prefix, e.g. "saved-state/" (default "")
    - `REANIMATOR_FERNET_KEY`: urlsafe base64-encoded key for Fernet
    - `REANIMATOR_S3_REGION`: region for the boto3 client
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        prefix: str = "",
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._loc = S3Location(bucket=bucket, prefix=prefix)
        self._fernet = _to_fernet(fernet_key)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "S3KeyValueStore":
        bucket = os.environ.get(ENV_BUCKET)
        fkey = os.environ.get(ENV_FERNET_KEY)
        if not bucket or not fkey:
            missing = [name for name, val in [(ENV_BUCKET, bucket), (ENV_FERNET_KEY, fkey)] if not val]
            raise RuntimeError(
                f"Missing required environment variables for S3 store: {', '.join(missing)}"
            )
        return cls(
            bucket=bucket,
            prefix=os.environ.get(ENV_PREFIX, ""),
            fernet_key=fkey,
            region_name=os.environ.get(ENV_REGION) or None,
        )

    # -------- Core operations --------
    def get(self, key: str) -> Optional[str]:
        """Read and decrypt the text stored under `key`.

        Returns None if the object does not exist.
        Raises StoreReadError for S3 failures, bad tokens or non-UTF-8 content.
        """
        object_key = self._loc.object_key(key)
        try:
            resp = self._s3.get_object(Bucket=self._loc.bucket, Key=object_key)
            body = resp["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise StoreReadError(f"S3 read failed for s3://{self._loc.bucket}/{object_key}: {code}") from e
        except BotoCoreError as e:
            raise StoreReadError(f"S3 read failed for s3://{self._loc.bucket}/{object_key}") from e

        try:
            decrypted = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise StoreReadError(f"Failed to decrypt {object_key}: invalid Fernet token") from ex

        try:
            return decrypted.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise StoreReadError(f"Decrypted {object_key} is not UTF-8 text") from ex

    def set(self, key: str, value: str) -> None:
        """Encrypt and write `value` under `key`, replacing any previous object."""
        if not isinstance(value, str):
            raise StoreWriteError(f"Value for {key!r} must be str, got {type(value).__name__}")
        object_key = self._loc.object_key(key)
        ciphertext = self._fernet.encrypt(value.encode("utf-8"))
        try:
            self._s3.put_object(
                Bucket=self._loc.bucket,
                Key=object_key,
                Body=ciphertext,
                ContentType="application/octet-stream",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            raise StoreWriteError(f"S3 write failed for s3://{self._loc.bucket}/{object_key}: {code}") from e
        except BotoCoreError as e:
            raise StoreWriteError(f"S3 write failed for s3://{self._loc.bucket}/{object_key}") from e
