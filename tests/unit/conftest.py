"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os
import threading
import time
import types
import uuid

import pytest

from daily_csv.config import AppConfig
from daily_csv.exceptions import S3ObjectNotFoundError


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables needed by the handler.
    """
    original = os.environ.copy()
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "daily-csv-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    yield
    os.environ.clear()
    os.environ.update(original)


def make_config(**overrides) -> AppConfig:
    values = dict(
        service_name="daily-csv-test",
        environment="test",
        log_level="INFO",
        output_prefix="daily",
        fetch_concurrency=4,
        sort_rows=False,
        kms_key_id=None,
        s3_max_attempts=3,
        s3_retry_base_delay_ms=0,
        s3_retry_max_delay_ms=0,
        s3_operation_timeout_seconds=30,
        max_logged_line_chars=1024,
        max_failure_samples=10,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def app_config() -> AppConfig:
    return make_config()


@pytest.fixture
def config_factory():
    """Builds an AppConfig with per-test overrides."""
    return make_config


class FakeObjectStore:
    """
    In-memory stand-in for S3Client that records in-flight fetches.

    Keys are listed in insertion order, mimicking a backend listing.
    """

    def __init__(self, fetch_delay: float = 0.0):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.puts: list[tuple[str, str, bytes, str]] = []
        self.fetched: list[str] = []
        self.failing_keys: dict[str, Exception] = {}
        self.fail_put: Exception | None = None
        self.fetch_delay = fetch_delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def add(self, bucket: str, key: str, body: bytes | str) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.objects[(bucket, key)] = body

    def list_keys(self, bucket: str, prefix: str) -> list[str]:
        return [k for (b, k) in self.objects if b == bucket and k.startswith(prefix)]

    def get_object_bytes(self, bucket: str, key: str) -> bytes:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fetch_delay:
                time.sleep(self.fetch_delay)
            if key in self.failing_keys:
                raise self.failing_keys[key]
            if (bucket, key) not in self.objects:
                raise S3ObjectNotFoundError(bucket=bucket, key=key)
            with self._lock:
                self.fetched.append(key)
            return self.objects[(bucket, key)]
        finally:
            with self._lock:
                self.in_flight -= 1

    def put_object_bytes(
        self, bucket: str, key: str, body: bytes, content_type: str
    ) -> dict:
        if self.fail_put is not None:
            raise self.fail_put
        self.puts.append((bucket, key, body, content_type))
        self.objects[(bucket, key)] = body
        return {"bucket": bucket, "key": key, "etag": '"fake"'}


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def store_factory():
    return FakeObjectStore


# ---------- Minimal, realistic dummy events ---------- #
@pytest.fixture
def s3_event() -> dict:
    """One S3 PUT notification for a realtime NDJSON object."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "awsRegion": "us-east-1",
                "eventName": "ObjectCreated:Put",
                "s3": {
                    "bucket": {"name": "openaq-fetches"},
                    "object": {
                        "key": "realtime/2020-01-01/1577836800.ndjson",
                        "size": 123,
                    },
                },
            }
        ]
    }


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="daily-csv",
        function_version="$LATEST",
        memory_limit_in_mb=512,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:us-east-1:000000000000:function:daily-csv",
        get_remaining_time_in_millis=lambda: 30000,
    )
