import asyncio
import base64
import hashlib
import hmac
import json
import re

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from ip_reputation import ReputationClient
from ip_reputation.utils.crypto import HawkSigner

HAWK_ID = "root"
HAWK_KEY = "toor"

CONFLICT_MESSAGE = "Reputation is already set for that IP."


def parse_hawk_header(value):
    assert value.startswith("Hawk ")
    return dict(re.findall(r'(\w+)="([^"]*)"', value[len("Hawk "):]))


class FakeReputationService:
    """In-memory reputation service served over a local socket

    Verifies the Hawk MAC the same way the service does and answers with the
    service's status codes. Every request is recorded in ``calls``.
    """

    START_REPUTATION = 100

    def __init__(self, key=HAWK_KEY, penalties=None, delay=0):
        self.key = key
        self.penalties = penalties if penalties is not None else {"test_violation": 30}
        self.delay = delay
        self.records = {}
        self.calls = []
        self.url = None

    def app(self):
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    def _authenticated(self, request, data):
        authorization = request.headers.get("Authorization", "")
        if not authorization.startswith("Hawk "):
            return False
        attrs = parse_hawk_header(authorization)
        payload_hash = attrs.get("hash")
        if data is not None:
            expected = HawkSigner.payload_hash(data, request.headers.get("Content-Type", ""))
            if payload_hash != expected:
                return False
        url = f"http://{request.host}{request.raw_path}"
        normalized = HawkSigner.normalized_string(
            request.method, url, int(attrs["ts"]), attrs["nonce"], payload_hash, attrs.get("ext")
        )
        mac = base64.b64encode(
            hmac.new(self.key.encode(), normalized.encode(), hashlib.sha256).digest()
        ).decode()
        return attrs.get("id") == HAWK_ID and hmac.compare_digest(mac, attrs.get("mac", ""))

    async def handle(self, request):
        data = await request.text() or None
        self.calls.append((request.method, request.raw_path, dict(request.headers), data))
        if self.delay:
            await asyncio.sleep(self.delay)

        if not self._authenticated(request, data):
            return web.Response(status=401, text="Unauthorized")

        path = request.raw_path
        payload = json.loads(data) if data else None

        if path.startswith("/violations/"):
            ip = path[len("/violations/"):]
            penalty = self.penalties.get(payload["Violation"], 0)
            record = self.records.setdefault(
                ip, {"IP": ip, "Reputation": self.START_REPUTATION, "Reviewed": False}
            )
            record["Reputation"] = max(0, record["Reputation"] - penalty)
            return web.Response(status=204)

        if request.method == "POST" and path == "/":
            if payload["IP"] in self.records:
                return web.Response(status=409, text=CONFLICT_MESSAGE)
            self.records[payload["IP"]] = {
                "IP": payload["IP"], "Reputation": payload["Reputation"], "Reviewed": False,
            }
            return web.Response(status=201)

        ip = path[1:]
        if request.method == "GET":
            if ip not in self.records:
                return web.Response(status=404)
            return web.json_response(dict(self.records[ip]))
        if request.method == "PUT":
            if ip not in self.records:
                return web.Response(status=404)
            self.records[ip]["Reputation"] = payload["Reputation"]
            return web.Response(status=200)
        if request.method == "DELETE":
            self.records.pop(ip, None)
            return web.Response(status=200)
        return web.Response(status=405)


async def _serve(fake):
    server = TestServer(fake.app(), host="127.0.0.1")
    await server.start_server()
    fake.url = str(server.make_url("")).rstrip("/")
    return server


@pytest.fixture
def config():
    return {"service_url": "http://127.0.0.1:8080", "id": HAWK_ID, "key": HAWK_KEY, "timeout": 50}


@pytest_asyncio.fixture
async def service():
    fake = FakeReputationService()
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def slow_service():
    fake = FakeReputationService(delay=0.2)
    server = await _serve(fake)
    yield fake
    await server.close()


@pytest.fixture
def client(service):
    return ReputationClient({"service_url": service.url, "id": HAWK_ID, "key": HAWK_KEY, "timeout": 1000})


class RawServer:
    """Plain socket server for transport tests; handlers are cancelled on close"""

    def __init__(self, handler):
        self.handler = handler
        self.tasks = set()
        self.server = None
        self.url = None

    async def _track(self, reader, writer):
        task = asyncio.current_task()
        self.tasks.add(task)
        try:
            await self.handler(reader, writer)
        finally:
            self.tasks.discard(task)

    async def start(self):
        self.server = await asyncio.start_server(self._track, "127.0.0.1", 0)
        host, port = self.server.sockets[0].getsockname()[:2]
        self.url = f"http://{host}:{port}"
        return self.url

    async def close(self):
        self.server.close()
        for task in list(self.tasks):
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)


@pytest_asyncio.fixture
async def silent_server():
    """Accepts connections and never answers"""
    async def handler(reader, writer):
        try:
            await reader.read()
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = RawServer(handler)
    yield await server.start()
    await server.close()


@pytest_asyncio.fixture
async def dripping_server():
    """Sends headers at once, then a 10-byte body one byte every 80 ms"""
    async def handler(reader, writer):
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: text/plain\r\n"
                b"Content-Length: 10\r\n\r\n"
            )
            await writer.drain()
            for _ in range(10):
                await asyncio.sleep(0.08)
                writer.write(b"x")
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = RawServer(handler)
    yield await server.start()
    await server.close()
