"""Shared fixtures and authority doubles for the acertlib test suite."""

import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

# ---------------------------------------------------------------------------
# Make the repository root importable without installing the package
# ---------------------------------------------------------------------------
_ROOT = str(Path(__file__).resolve().parent.parent)
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from acertlib import tools  # noqa: E402
from acertlib.authority.acme import ACMEAuthority  # noqa: E402

FIXTURES = Path(__file__).resolve().parent / "fixtures"

CERT_URL = "https://ca.example.org/acme/cert/5a3c9e1f2b7d4408"

# CertID of fixtures/leaf.pem issued by fixtures/issuer.pem
GOLDEN_CERT_ID_SHA256 = (
    "MFswCwYJYIZIAWUDBAIBBCBZC5KpIJ6Jgz0NmUr9pjjAyntvJvgNu8-IeL1zm2GakAQg"
    "-5USk4-Z-weOSoW0YA4fIZ0xdr6aZ48A__gz010i45ECCFo8nh8rfUQI"
)
GOLDEN_CERT_ID_SHA1 = (
    "MD8wBwYFKw4DAhoEFA3DbpnqNLsxsJZZ0PnDTwC1ZICXBBShGioyWnFqNZ9uRavpuMJ_PD6yewIIWjyeHyt9RAg"
)
LEAF_SERIAL = 0x5A3C9E1F2B7D4408


class FakeAuthority(ACMEAuthority):
    """In-memory authority double recording every request."""

    def __init__(self, chain_body=b"", links=(), directory=None):
        ACMEAuthority.__init__(self, {}, None)
        self.chain_body = chain_body
        self.links = list(links)
        self.directory = dict(directory) if directory is not None else {
            "revokeCert": "https://ca.example.org/acme/revoke-cert",
        }
        self.resources = {}
        self.certificate_requests = []
        self.resource_requests = []
        self.signed_requests = []
        self.download_errors = []
        self.directory_error = None
        self.signed_error = None

    def resource_url_optional(self, name):
        if self.directory_error is not None:
            raise self.directory_error
        return self.directory.get(name)

    def request_certificate(self, url):
        self.certificate_requests.append(url)
        if self.download_errors:
            raise self.download_errors.pop(0)
        return self.chain_body, {"Link": list(self.links)}

    def request_resource(self, url):
        self.resource_requests.append(url)
        if url not in self.resources:
            raise tools.TransportError("Error fetching {}".format(url), 404)
        return self.resources[url]

    def send_signed_request(self, url, payload, key=None):
        self.signed_requests.append((url, payload, key))
        if self.signed_error is not None:
            raise self.signed_error
        return {}, {}


# ---------------------------------------------------------------------------
# Certificate fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def issuer_pem():
    return (FIXTURES / "issuer.pem").read_text()


@pytest.fixture(scope="session")
def leaf_pem():
    return (FIXTURES / "leaf.pem").read_text()


@pytest.fixture(scope="session")
def issuer_cert(issuer_pem):
    return tools.convert_pem_str_to_cert(issuer_pem)


@pytest.fixture(scope="session")
def leaf_cert(leaf_pem):
    return tools.convert_pem_str_to_cert(leaf_pem)


@pytest.fixture(scope="session")
def chain_pem(leaf_pem, issuer_pem):
    return (leaf_pem + "\n" + issuer_pem).encode("ascii")


@pytest.fixture()
def fake_authority(chain_pem):
    return FakeAuthority(chain_body=chain_pem)


@pytest.fixture()
def domain_key():
    return ec.generate_private_key(ec.SECP256R1())
