import httpx
import pytest

from resumeup.errors import InvalidConfiguration, TransientNetworkFailure
from resumeup.net.http import ApiClient
from resumeup.transfer.protocol import ChunkEncoding, ChunkTransmitter


@pytest.fixture
def session_id(server):
    return server.create_session(bytes(1000), 300)


@pytest.mark.asyncio
async def test_multipart_is_default(api, server, session_id):
    """Multipart sends the bytes in the "chunk" field named chunk_<i>.bin."""
    transmitter = ChunkTransmitter(api)
    ack = await transmitter.send(session_id, 2, b"x" * 300)

    assert transmitter.encoding is ChunkEncoding.MULTIPART
    assert server.chunk_requests == [("POST", "multipart", 2, "chunk", "chunk_2.bin")]
    assert server.sessions[session_id]["chunks"][2] == b"x" * 300
    assert ack.accepted and ack.index == 2
    assert ack.message == "Chunk 2 uploaded"
    assert ack.progress == pytest.approx(25.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("encoding, method", [("put", "PUT"), ("post", "POST")])
async def test_raw_body_encodings(api, server, session_id, encoding, method):
    ack = await ChunkTransmitter(api, encoding).send(session_id, 0, b"raw-bytes")

    assert server.chunk_requests == [(method, "application/octet-stream", 0, None, None)]
    assert server.sessions[session_id]["chunks"][0] == b"raw-bytes"
    assert ack.accepted


@pytest.mark.asyncio
async def test_resending_a_delivered_chunk_is_not_an_error(api, server, session_id):
    transmitter = ChunkTransmitter(api)
    await transmitter.send(session_id, 0, b"a" * 300)
    ack = await transmitter.send(session_id, 0, b"a" * 300)
    assert ack.accepted
    assert server.chunk_indices() == [0, 0]


@pytest.mark.asyncio
async def test_server_error_propagates_without_retry(api, server, session_id):
    server.fail_chunks.add(1)
    with pytest.raises(TransientNetworkFailure) as excinfo:
        await ChunkTransmitter(api).send(session_id, 1, b"b" * 300)
    assert excinfo.value.status_code == 503
    assert "temporarily unavailable" in excinfo.value.message
    chunk_posts = [r for r in server.requests if r.url.path.endswith("/chunk/1")]
    assert len(chunk_posts) == 1


def test_unknown_encoding_rejected():
    with pytest.raises(InvalidConfiguration):
        ChunkTransmitter(None, "gzip")


@pytest.mark.asyncio
async def test_explicit_rejection_in_ack_body():
    def handler(request):
        return httpx.Response(200, json={"accepted": False, "message": "duplicate chunk"})

    async with ApiClient("https://api.example.com", transport=httpx.MockTransport(handler)) as api:
        ack = await ChunkTransmitter(api).send("s1", 0, b"data")
    assert not ack.accepted
    assert ack.message == "duplicate chunk"
