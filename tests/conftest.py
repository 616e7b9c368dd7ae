"""Shared fixtures: a scripted stand-in for Playwright's APIRequestContext."""

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from printer_session import Printer
from settle import FixedDelay


class FakeResponse:
    def __init__(self, content="", status=200, url="https://printer.example.com/",
                 content_type="text/html"):
        self.content = content.encode() if isinstance(content, str) else content
        self.status = status
        self.url = url
        self.headers = {"content-type": content_type}
        self.disposed = False

    def body(self):
        return self.content

    def text(self):
        return self.body().decode()

    def dispose(self):
        self.disposed = True


class FakeRequest:
    """Replies to (method, path) from a queue; the last reply is repeated."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.disposed = False

    def route(self, method, path, *replies):
        self.routes.setdefault((method, path), []).extend(
            reply if isinstance(reply, (FakeResponse, Exception)) else FakeResponse(reply) for reply in replies
        )

    def _reply(self, method, path, kwargs):
        self.calls.append((method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected {method.upper()} {path}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, path, **kwargs):
        return self._reply("get", path, kwargs)

    def post(self, path, **kwargs):
        return self._reply("post", path, kwargs)

    def dispose(self):
        self.disposed = True

    def posts(self, path=None):
        return [kwargs for method, p, kwargs in self.calls if method == "post" and (path is None or p == path)]


@pytest.fixture
def request_context():
    return FakeRequest()


@pytest.fixture
def printer(request_context):
    return Printer(request_context, base_url="https://printer.example.com")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def no_wait(sleeps):
    return FixedDelay(sleep=sleeps.append)


@pytest.fixture(scope="session")
def key_and_cert_pem():
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "printer.example.com")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=90))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return key_pem, cert.public_bytes(serialization.Encoding.PEM)
