import json
import re
import uuid
from hashlib import sha256

import httpx
import pytest
import pytest_asyncio

from resumeup.net.http import ApiClient
from resumeup.transfer import UploadOrchestrator

_CHUNK_ROUTE = re.compile(r"^/api/upload/([^/]+)/chunk/(\d+)$")
_SESSION_ROUTE = re.compile(r"^/api/upload/([^/]+)(?:/(status|complete))?$")


def _json(status_code, payload=None):
    if payload is None:
        return httpx.Response(status_code)
    return httpx.Response(status_code, json=payload)


def parse_multipart(request):
    """Return ``(field_name, filename, data)`` of the first part in a multipart body."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=", 1)[1].encode()
    for part in request.content.split(b"--" + boundary):
        if b"\r\n\r\n" not in part:
            continue
        head, _, body = part.partition(b"\r\n\r\n")
        name = re.search(rb'name="([^"]+)"', head)
        filename = re.search(rb'filename="([^"]+)"', head)
        if name is None:
            continue
        if body.endswith(b"\r\n"):
            body = body[:-2]
        return name.group(1).decode(), filename.group(1).decode() if filename else None, body
    raise AssertionError("no multipart part found")


class FakeUploadServer:
    """In-memory implementation of the upload API wire contract."""

    def __init__(self):
        self.sessions = {}
        self.requests = []
        self.chunk_requests = []
        self.fail_chunks = set()
        self.disconnect_chunks = set()
        self.garble_chunks = set()
        self.completed_files = {}

    def create_session(self, data, chunk_size, uploaded=(), status="uploading", checksum=None):
        session_id = uuid.uuid4().hex
        total_chunks = -(-len(data) // chunk_size)
        self.sessions[session_id] = {
            "filename": "preloaded.bin",
            "total_size": len(data),
            "chunk_size": chunk_size,
            "total_chunks": total_chunks,
            "checksum": checksum,
            "project_id": "proj-1",
            "content_type": None,
            "status": status,
            "chunks": {
                i: data[i * chunk_size : (i + 1) * chunk_size] for i in uploaded
            },
        }
        return session_id

    def handle(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/api/upload/init" and request.method == "POST":
            return self._init(request)
        match = _CHUNK_ROUTE.match(path)
        if match:
            return self._chunk(request, match.group(1), int(match.group(2)))
        match = _SESSION_ROUTE.match(path)
        if match:
            session_id, action = match.groups()
            session = self.sessions.get(session_id)
            if request.method == "DELETE" and action is None:
                if session is None:
                    return _json(404, {"error": "Upload session not found"})
                del self.sessions[session_id]
                return _json(204)
            if session is None:
                return _json(404, {"error": "Upload session not found"})
            if action == "status" and request.method == "GET":
                return self._status(session)
            if action == "complete" and request.method == "POST":
                return self._complete(session_id, session)
        return _json(404, {"error": f"no route for {request.method} {path}"})

    def _init(self, request):
        body = json.loads(request.content)
        if not body.get("filename") or body.get("chunk_size", 0) <= 0 or body.get("total_size", -1) < 0:
            return _json(400, {"error": "invalid upload parameters"})
        if not body.get("project_id"):
            return _json(400, {"error": "project_id is required"})
        session_id = uuid.uuid4().hex
        total_chunks = -(-body["total_size"] // body["chunk_size"])
        self.sessions[session_id] = {
            "filename": body["filename"],
            "total_size": body["total_size"],
            "chunk_size": body["chunk_size"],
            "total_chunks": total_chunks,
            "checksum": body.get("checksum"),
            "project_id": body["project_id"],
            "content_type": body.get("content_type"),
            "status": "pending",
            "chunks": {},
        }
        return _json(200, {"session_id": session_id, "total_chunks": total_chunks})

    def _chunk(self, request, session_id, index):
        if index in self.disconnect_chunks:
            raise httpx.ConnectError("connection reset", request=request)
        if index in self.fail_chunks:
            return _json(503, {"error": "storage temporarily unavailable"})
        if index in self.garble_chunks:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")
        session = self.sessions.get(session_id)
        if session is None:
            return _json(404, {"error": "Upload session not found"})
        if session["status"] == "completed":
            return _json(400, {"error": "Upload already completed"})
        if index >= session["total_chunks"]:
            return _json(400, {"error": f"chunk index {index} out of range"})
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("multipart/form-data"):
            field, filename, data = parse_multipart(request)
            self.chunk_requests.append((request.method, "multipart", index, field, filename))
        else:
            data = request.content
            self.chunk_requests.append((request.method, content_type, index, None, None))
        session["chunks"][index] = data
        session["status"] = "uploading"
        progress = len(session["chunks"]) / session["total_chunks"] * 100
        return _json(200, {"message": f"Chunk {index} uploaded", "progress": progress})

    def _status(self, session):
        uploaded = sorted(session["chunks"])
        missing = [i for i in range(session["total_chunks"]) if i not in session["chunks"]]
        return _json(
            200,
            {
                "status": session["status"],
                "uploaded_chunks": uploaded,
                "missing_chunks": missing,
                "total_chunks": session["total_chunks"],
                "chunk_size": session["chunk_size"],
                "total_size": session["total_size"],
            },
        )

    def _complete(self, session_id, session):
        if session["status"] == "completed":
            return _json(409, {"error": "Upload already completed"})
        missing = [i for i in range(session["total_chunks"]) if i not in session["chunks"]]
        if missing:
            return _json(400, {"error": f"Missing chunks: {missing}"})
        merged = b"".join(session["chunks"][i] for i in range(session["total_chunks"]))
        if session["checksum"] and sha256(merged).hexdigest() != session["checksum"]:
            return _json(400, {"error": "Checksum mismatch"})
        session["status"] = "completed"
        file_id = f"file-{session_id[:8]}"
        self.completed_files[file_id] = merged
        return _json(
            200,
            {
                "url": f"https://files.example.com/{file_id}",
                "file_id": file_id,
                "filename": session["filename"],
                "size": len(merged),
            },
        )

    def chunk_indices(self):
        return [entry[2] for entry in self.chunk_requests]


@pytest.fixture
def server():
    return FakeUploadServer()


@pytest_asyncio.fixture
async def api(server):
    client = ApiClient(
        "https://api.example.com",
        api_key="pk_test",
        project_id="proj-1",
        transport=httpx.MockTransport(server.handle),
    )
    yield client
    await client.aclose()


@pytest.fixture
def orchestrator(api):
    return UploadOrchestrator(api, chunk_size=300)


@pytest.fixture
def make_file(tmp_path):
    def _make(size, name="payload.bin"):
        path = tmp_path / name
        path.write_bytes(bytes((i * 7 + 3) % 256 for i in range(size)))
        return path

    return _make
