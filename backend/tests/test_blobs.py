import json
from urllib.parse import parse_qs, unquote, urlparse

import httpx
import pytest

from linkvault.core.errors import BackendUnavailable, NotFound
from linkvault.services.blobs import LocalBlobBackend, SupabaseBlobBackend, blob_path_for


def split_signed(url):
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    path = unquote(parsed.path[len("/blobs/"):])
    return path, int(query["expires"][0]), query["sig"][0]


@pytest.mark.parametrize(
    "name,expected",
    [
        ("report.pdf", "slug00000001/report.pdf"),
        ("../../etc/passwd", "slug00000001/passwd"),
        ("C:\\Users\\me\\notes.txt", "slug00000001/notes.txt"),
        ("weird name$%.txt", "slug00000001/weird name_.txt"),
        ("", "slug00000001/file"),
        ("...", "slug00000001/file"),
    ],
)
def test_blob_path_for(name, expected):
    assert blob_path_for("slug00000001", name) == expected


def test_local_put_sign_open(blobs, clock):
    blobs.put(b"data", "slug00000001/a.txt", "text/plain")
    url = blobs.sign_retrieval_url("slug00000001/a.txt", 120)
    assert url.startswith("http://testserver/blobs/slug00000001/a.txt?")

    path, expires, sig = split_signed(url)
    assert expires == int(clock.timestamp()) + 120
    assert blobs.open_signed(path, expires, sig).read_bytes() == b"data"


def test_local_put_never_overwrites(blobs):
    blobs.put(b"one", "slug00000001/a.txt", "text/plain")
    with pytest.raises(BackendUnavailable):
        blobs.put(b"two", "slug00000001/a.txt", "text/plain")


def test_local_signed_url_expires(blobs, clock):
    blobs.put(b"data", "slug00000001/a.txt", "text/plain")
    path, expires, sig = split_signed(blobs.sign_retrieval_url("slug00000001/a.txt", 120))
    clock.advance(121)
    with pytest.raises(NotFound):
        blobs.open_signed(path, expires, sig)


def test_local_rejects_tampering(blobs):
    blobs.put(b"data", "slug00000001/a.txt", "text/plain")
    blobs.put(b"other", "slug00000002/b.txt", "text/plain")
    path, expires, sig = split_signed(blobs.sign_retrieval_url("slug00000001/a.txt", 120))
    with pytest.raises(NotFound):
        blobs.open_signed("slug00000002/b.txt", expires, sig)
    with pytest.raises(NotFound):
        blobs.open_signed(path, expires + 3600, sig)
    with pytest.raises(NotFound):
        blobs.open_signed(path, expires, "0" * 64)


def test_local_signature_depends_on_key(tmp_path, clock):
    a = LocalBlobBackend(str(tmp_path), "http://x", signing_key=b"a", clock=clock.timestamp)
    b = LocalBlobBackend(str(tmp_path), "http://x", signing_key=b"b", clock=clock.timestamp)
    a.put(b"data", "s/a.txt", "text/plain")
    path, expires, sig = split_signed(a.sign_retrieval_url("s/a.txt", 60))
    assert a.open_signed(path, expires, sig).is_file()
    with pytest.raises(NotFound):
        b.open_signed(path, expires, sig)


def test_local_path_traversal_is_not_found(blobs):
    with pytest.raises(NotFound):
        blobs.open_signed("../secret", 9999999999, "0" * 64)
    blobs.delete("../../outside.txt")  # silently ignored


def test_local_sign_missing_blob_is_unavailable(blobs):
    with pytest.raises(BackendUnavailable):
        blobs.sign_retrieval_url("slug00000001/missing.txt", 60)


def test_local_delete_is_idempotent(blobs, blob_dir):
    blobs.put(b"data", "slug00000001/a.txt", "text/plain")
    blobs.delete("slug00000001/a.txt")
    blobs.delete("slug00000001/a.txt")
    assert not (blob_dir / "slug00000001").exists()


class FakeStorage:
    """Just enough of the Supabase Storage REST API."""

    def __init__(self, fail_with=None):
        self.objects = {}
        self.requests = []
        self.fail_with = fail_with

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "boom"})
        path = unquote(request.url.path)
        prefix = "/storage/v1/object/"
        if request.method == "POST" and path.startswith(prefix + "sign/uploads/"):
            key = path[len(prefix + "sign/uploads/"):]
            if key not in self.objects:
                return httpx.Response(400, json={"error": "not_found"})
            ttl = json.loads(request.content)["expiresIn"]
            return httpx.Response(200, json={"signedURL": f"/object/sign/uploads/{key}?token=t{ttl}"})
        if request.method == "POST" and path.startswith(prefix + "uploads/"):
            key = path[len(prefix + "uploads/"):]
            self.objects[key] = request.content
            return httpx.Response(200, json={"Key": f"uploads/{key}"})
        if request.method == "DELETE" and path == prefix + "uploads":
            for key in json.loads(request.content)["prefixes"]:
                self.objects.pop(key, None)
            return httpx.Response(200, json=[])
        return httpx.Response(404)


def supabase(storage):
    return SupabaseBlobBackend(
        "https://proj.supabase.co/",
        "service-key",
        "uploads",
        transport=httpx.MockTransport(storage),
    )


def test_supabase_put_sign_delete():
    storage = FakeStorage()
    backend = supabase(storage)

    assert backend.put(b"%PDF", "slug00000001/a.pdf", "application/pdf") == "slug00000001/a.pdf"
    assert storage.objects["slug00000001/a.pdf"] == b"%PDF"
    put = storage.requests[0]
    assert put.headers["authorization"] == "Bearer service-key"
    assert put.headers["apikey"] == "service-key"
    assert put.headers["x-upsert"] == "false"
    assert put.headers["content-type"] == "application/pdf"

    url = backend.sign_retrieval_url("slug00000001/a.pdf", 120)
    assert url == "https://proj.supabase.co/storage/v1/object/sign/uploads/slug00000001/a.pdf?token=t120"

    backend.delete("slug00000001/a.pdf")
    backend.delete("slug00000001/a.pdf")
    assert storage.objects == {}
    backend.close()


def test_supabase_failures_are_unavailable():
    backend = supabase(FakeStorage(fail_with=500))
    with pytest.raises(BackendUnavailable):
        backend.put(b"x", "s/a.txt", "text/plain")
    with pytest.raises(BackendUnavailable):
        backend.sign_retrieval_url("s/a.txt", 60)
    backend.delete("s/a.txt")  # logged, never raised


def test_supabase_transport_errors():
    def offline(request):
        raise httpx.ConnectError("offline", request=request)

    backend = SupabaseBlobBackend("https://proj.supabase.co", "k", "uploads", transport=httpx.MockTransport(offline))
    with pytest.raises(BackendUnavailable):
        backend.put(b"x", "s/a.txt", "text/plain")
    backend.delete("s/a.txt")
