"""
Pytest configuration and shared fixtures.

FakeBackend is an aiohttp application that plays both the presigned URL
broker and the object store, so uploads run over real HTTP.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from mpupload.infrastructure.config.models import UploadConfig

MiB = 1024 * 1024
S3_NS = "http://s3.amazonaws.com/doc/2006-03-01/"


def payload(size: int) -> bytes:
    """Deterministic test data of ``size`` bytes."""
    block = bytes(range(256))
    return (block * (size // len(block) + 1))[:size]


class FakeBackend:
    """Broker and object store in one aiohttp application."""

    def __init__(self) -> None:
        self.base_url = ""
        self.upload_id = "upload-123"
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.parts: Dict[int, bytes] = {}
        self.put_attempts: Dict[int, int] = defaultdict(int)
        self.put_queries: List[str] = []

        # Behaviour knobs
        self.create_status = 200
        self.create_body: Optional[str] = None
        self.part_failures: Dict[int, List[int]] = {}
        self.omit_etag_parts: Set[int] = set()
        self.drop_parts: Set[int] = set()
        self.part_numbers: Optional[List[Any]] = None
        self.parturls_body: Optional[str] = None
        self.complete_status = 200
        self.abort_status = 204
        self.manifest: Optional[str] = None
        self.manifest_content_type: Optional[str] = None

    def count(self, endpoint: str) -> int:
        return sum(1 for name, _ in self.calls if name == endpoint)

    def query(self, endpoint: str) -> Dict[str, str]:
        return [query for name, query in self.calls if name == endpoint][-1]

    @property
    def object_bytes(self) -> bytes:
        return b"".join(self.parts[n] for n in sorted(self.parts))

    def app(self) -> web.Application:
        app = web.Application(client_max_size=64 * MiB)
        app.router.add_post("/objstorage/creatempu", self._create)
        app.router.add_get("/objstorage/parturls", self._part_urls)
        app.router.add_post("/objstorage/completempu", self._complete)
        app.router.add_delete("/objstorage/abortmpu", self._abort)
        app.router.add_put("/store/{part_number}", self._put)
        return app

    def _record(self, name: str, request: web.Request) -> None:
        self.calls.append((name, dict(request.query)))

    async def _create(self, request: web.Request) -> web.Response:
        self._record("creatempu", request)
        if self.create_status != 200:
            return web.Response(status=self.create_status, text="InternalError")
        body = self.create_body or (
            f'<?xml version="1.0" encoding="UTF-8"?>'
            f'<InitiateMultipartUploadResult xmlns="{S3_NS}">'
            f'<Bucket>{request.query["bucket"]}</Bucket>'
            f'<Key>{request.query["key"]}</Key>'
            f'<UploadId>{self.upload_id}</UploadId>'
            f'</InitiateMultipartUploadResult>'
        )
        return web.Response(text=body, content_type="application/xml")

    async def _part_urls(self, request: web.Request) -> web.Response:
        self._record("parturls", request)
        if self.parturls_body is not None:
            return web.Response(text=self.parturls_body, content_type="application/json")

        num_parts = int(request.query["numParts"])
        numbers = self.part_numbers or list(range(1, num_parts + 1))
        # Served in reverse order; the broker must sort them
        items = [
            {
                "partNumber": n,
                "url": f"{self.base_url}/store/{n}?X-Amz-Signature=abc%2Fdef&partNumber={n}",
            }
            for n in reversed(numbers)
        ]
        return web.json_response(items)

    async def _put(self, request: web.Request) -> web.Response:
        part_number = int(request.match_info["part_number"])
        if part_number in self.drop_parts:
            # Reset the connection part way through the body, once
            self.drop_parts.discard(part_number)
            self.put_attempts[part_number] += 1
            await request.content.read(1024)
            request.transport.close()
            return web.Response(status=500)

        data = await request.read()
        self.put_attempts[part_number] += 1
        self.put_queries.append(request.rel_url.raw_query_string)

        failures = self.part_failures.get(part_number)
        if failures:
            return web.Response(status=failures.pop(0), text="<Error><Code>SlowDown</Code></Error>")

        self.parts[part_number] = data
        headers = {} if part_number in self.omit_etag_parts else {"ETag": f'"etag-{part_number}"'}
        return web.Response(status=200, headers=headers)

    async def _complete(self, request: web.Request) -> web.Response:
        self._record("completempu", request)
        self.manifest = await request.text()
        self.manifest_content_type = request.headers.get("Content-Type")
        if self.complete_status != 200:
            return web.Response(status=self.complete_status, text="InvalidPart")

        key = request.query["key"]
        body = (
            f'<?xml version="1.0" encoding="UTF-8"?>'
            f'<CompleteMultipartUploadResult xmlns="{S3_NS}">'
            f'<Location>{self.base_url}/{request.query["bucket"]}/{key}</Location>'
            f'<Bucket>{request.query["bucket"]}</Bucket>'
            f'<Key>{key}</Key>'
            f'<ETag>"final-etag-{len(self.parts)}"</ETag>'
            f'<ChecksumCRC64NVME>AAAAAAAAAAA=</ChecksumCRC64NVME>'
            f'<ChecksumType>FULL_OBJECT</ChecksumType>'
            f'</CompleteMultipartUploadResult>'
        )
        return web.Response(text=body, content_type="application/xml")

    async def _abort(self, request: web.Request) -> web.Response:
        self._record("abortmpu", request)
        return web.Response(status=self.abort_status)


@pytest.fixture
async def backend():
    """Running fake backend."""
    fake = FakeBackend()
    server = TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("")).rstrip("/")

    yield fake

    await server.close()


@pytest.fixture
async def http():
    """Client session shared by one test."""
    async with aiohttp.ClientSession() as session:
        yield session


def make_config(backend: FakeBackend, **overrides: Any) -> UploadConfig:
    """Upload settings pointing at the fake backend, without backoff delays."""
    values: Dict[str, Any] = {
        "endpoint_base": backend.base_url,
        "bucket": "samples",
        "key": "runs/sample-1.tar",
        "part_size": 5 * MiB,
        "num_retries": 3,
        "base_delay": 0.0,
        "jitter": 0.0,
    }
    values.update(overrides)
    return UploadConfig(**values)
