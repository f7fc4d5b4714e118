# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/storage/s3.py

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import boto3
import botocore.exceptions
from botocore.config import Config

from ..errors import NotFoundError
from ..utils.retry import retry

log = logging.getLogger("avalops")

BOTO_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})

# connection hiccups, plus throttling answers; anything else is a real answer
_TRANSIENT = (
    botocore.exceptions.EndpointConnectionError,
    botocore.exceptions.ConnectionClosedError,
    botocore.exceptions.ReadTimeoutError,
    botocore.exceptions.ClientError,
)
_THROTTLED = {"SlowDown", "RequestTimeout", "ServiceUnavailable", "503"}


def _transient(exc: Exception) -> bool:
    if isinstance(exc, botocore.exceptions.ClientError):
        return exc.response.get("Error", {}).get("Code") in _THROTTLED
    return True


class ObjectStore(Protocol):
    """The only shared resource between machines of one cluster."""

    def put_bytes(self, key: str, data: bytes) -> None: ...

    def get_bytes(self, key: str) -> bytes: ...

    def list_keys(self, prefix: str) -> List[str]: ...


class S3Store:
    """ObjectStore over one S3 bucket."""

    def __init__(self, bucket: str, *, client=None, region: Optional[str] = None, profile: Optional[str] = None):
        self.bucket = bucket
        if client is None:
            session = boto3.session.Session(profile_name=profile, region_name=region)
            client = session.client("s3", config=BOTO_CONFIG)
        self.client = client

    @retry(retries=3, delay=1.0, backoff=2.0, retry_on=_TRANSIENT, when=_transient)
    def put_bytes(self, key: str, data: bytes) -> None:
        log.debug("[s3] put s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data)

    @retry(retries=3, delay=1.0, backoff=2.0, retry_on=_TRANSIENT, when=_transient)
    def get_bytes(self, key: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except botocore.exceptions.ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFoundError(f"s3://{self.bucket}/{key} does not exist", path=key) from e
            raise
        return resp["Body"].read()

    @retry(retries=3, delay=1.0, backoff=2.0, retry_on=_TRANSIENT, when=_transient)
    def list_keys(self, prefix: str) -> List[str]:
        keys: List[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        log.debug("[s3] listed %d keys under s3://%s/%s", len(keys), self.bucket, prefix)
        return keys
