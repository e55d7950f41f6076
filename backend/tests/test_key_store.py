import asyncio
import hashlib

import httpx
import pytest

from veritas.core.errors import KeyLoadError
from veritas.infrastructure.zkp.key_store import KeyStore

BLOB = b"\x00asm-circuit-bytes"


def _fetch(store, *args, **kwargs):
    return asyncio.run(store.fetch(*args, **kwargs))

# ═══════════════════════════════════════════════════════════════════════════════
# LOCAL FILES
# ═══════════════════════════════════════════════════════════════════════════════

def test_fetch_relative_path_under_base_dir(tmp_path):
    (tmp_path / "circuit.wasm").write_bytes(BLOB)
    assert _fetch(KeyStore(base_dir=tmp_path), "circuit.wasm") == BLOB

def test_fetch_file_uri(tmp_path):
    path = tmp_path / "circuit.wasm"
    path.write_bytes(BLOB)
    assert _fetch(KeyStore(), path.as_uri()) == BLOB

def test_missing_file_is_key_load_error(tmp_path):
    with pytest.raises(KeyLoadError):
        _fetch(KeyStore(base_dir=tmp_path), "absent.zkey")

def test_empty_blob_is_key_load_error(tmp_path):
    (tmp_path / "empty.bin").write_bytes(b"")
    with pytest.raises(KeyLoadError):
        _fetch(KeyStore(base_dir=tmp_path), "empty.bin")

def test_digest_pin(tmp_path):
    (tmp_path / "vk.bin").write_bytes(BLOB)
    store = KeyStore(base_dir=tmp_path)

    assert _fetch(store, "vk.bin", hashlib.sha256(BLOB).hexdigest().upper()) == BLOB
    with pytest.raises(KeyLoadError) as exc_info:
        _fetch(store, "vk.bin", "ab" * 32)
    assert exc_info.value.details["actual"] == hashlib.sha256(BLOB).hexdigest()

def test_fetch_many_preserves_order(tmp_path):
    for name in ("a", "b", "c"):
        (tmp_path / name).write_bytes(name.encode())
    blobs = asyncio.run(KeyStore(base_dir=tmp_path).fetch_many(["c", "a", "b"]))
    assert blobs == [b"c", b"a", b"b"]

# ═══════════════════════════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════════════════════════

def _http_store_fetch(uri, handler):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await KeyStore(client=client).fetch(uri)
    return asyncio.run(run())

def test_fetch_over_http():
    def handler(request):
        assert request.url.path == "/zk/pk.bin"
        return httpx.Response(200, content=BLOB)

    assert _http_store_fetch("https://artifacts.example/zk/pk.bin", handler) == BLOB

def test_http_error_is_key_load_error():
    def handler(request):
        return httpx.Response(404)

    with pytest.raises(KeyLoadError):
        _http_store_fetch("https://artifacts.example/zk/pk.bin", handler)

def test_http_transport_error_is_key_load_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(KeyLoadError):
        _http_store_fetch("https://artifacts.example/zk/pk.bin", handler)
