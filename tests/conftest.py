"""Shared fixtures: a recording Penguin API peer and status builders."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from penguin.models import VirtualMachineStatus


@dataclass
class Reply:
    status: int = 200
    body: bytes | str | dict | list | None = None

    def encode(self) -> bytes:
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body).encode("utf-8")


@dataclass
class Recorded:
    method: str
    raw_path: str
    path: str
    query: dict[str, str]
    headers: dict[str, str]
    body: bytes


@dataclass
class RecordingApi:
    """Answers every request with the next queued reply (the last one repeats)."""

    replies: list[Reply]
    requests: list[Recorded] = field(default_factory=list)

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(
            Recorded(
                method=request.method,
                raw_path=request.raw_path.split("?", 1)[0],
                path=request.path,
                query=dict(request.query),
                headers={k.lower(): v for k, v in request.headers.items()},
                body=await request.read(),
            )
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return web.Response(
            status=reply.status,
            body=reply.encode() or None,
            content_type="application/json",
        )

    @property
    def last(self) -> Recorded:
        return self.requests[-1]


@pytest.fixture
def penguin_api():
    """Factory starting a local API peer.

    Usage:
        async with penguin_api(Reply(200, {...})) as (api, base_url):
            ...
    """

    @asynccontextmanager
    async def serve(*replies: Reply):
        api = RecordingApi(list(replies) or [Reply()])
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", api.handle)
        async with TestServer(app) as server:
            yield api, str(server.make_url("/")).rstrip("/")

    return serve


def make_status(**overrides: Any) -> VirtualMachineStatus:
    """Build a virtual machine status with sensible defaults."""
    values: dict[str, Any] = {
        "id": "ins-1",
        "zone": "ap-guangzhou-6",
        "instance_id": "cvm-abc",
        "instance_type": "SA2.MEDIUM2",
        "instance_state": "RUNNING",
        "cpu": 2,
        "memory_gib": 4,
        "system_disk_size_gib": 50,
        "private_ips": ["10.0.0.5"],
        "public_ips": ["203.0.113.7"],
        "total_transfer_kb": 1024,
        "used_transfer_kb": 12,
    }
    values.update(overrides)
    return VirtualMachineStatus(**values)
