"""Tests for the lazily downloaded certificate resource."""

import email.message
import io
import threading
import time

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from acertlib import tools
from acertlib.authority import v2
from acertlib.certificate import Certificate, State
from acertlib.renewal_info import RenewalInfo
from acertlib.tools import LazyLoadError, ProtocolError, TransportError, UnsupportedError
from conftest import CERT_URL, GOLDEN_CERT_ID_SHA256, FakeAuthority

ALT_1 = "https://ca.example.org/acme/cert/5a3c9e1f2b7d4408/1"
ALT_2 = "https://ca.example.org/acme/cert/5a3c9e1f2b7d4408/2"


def _der(cert):
    return tools.convert_cert_to_der_bytes(cert)


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


class TestDownload:
    def test_nothing_is_fetched_on_bind(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        assert cert.state is State.UNLOADED
        assert fake_authority.certificate_requests == []

    def test_download_populates_chain_and_alternates(self, fake_authority, leaf_cert, issuer_cert):
        fake_authority.links = ['<{}>;rel="alternate"'.format(ALT_1), '<{}>; rel="index"'.format(CERT_URL)]
        cert = Certificate(fake_authority, CERT_URL)
        cert.download()

        assert cert.state is State.LOADED
        assert fake_authority.certificate_requests == [CERT_URL]
        assert [_der(c) for c in cert.get_certificate_chain()] == [_der(leaf_cert), _der(issuer_cert)]
        assert list(cert.get_alternates()) == [ALT_1]

    def test_download_is_idempotent(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        cert.download()
        chain = cert.get_certificate_chain()
        alternates = cert.get_alternates()

        cert.download()

        assert len(fake_authority.certificate_requests) == 1
        assert cert.get_certificate_chain() is chain
        assert cert.get_alternates() is alternates

    def test_failed_download_is_retried(self, fake_authority):
        fake_authority.download_errors.append(TransportError("unavailable", 503))
        cert = Certificate(fake_authority, CERT_URL)

        with pytest.raises(TransportError):
            cert.download()
        assert cert.state is State.UNLOADED

        cert.download()
        assert cert.state is State.LOADED
        assert len(fake_authority.certificate_requests) == 2

    def test_unparsable_chain_leaves_resource_unloaded(self):
        authority = FakeAuthority(chain_body=b"-----BEGIN CERTIFICATE-----\ngarbage\n-----END CERTIFICATE-----\n")
        cert = Certificate(authority, CERT_URL)
        with pytest.raises(tools.EncodingError):
            cert.download()
        assert cert.state is State.UNLOADED

    def test_der_response(self, leaf_cert):
        authority = FakeAuthority(chain_body=_der(leaf_cert))
        cert = Certificate(authority, CERT_URL)
        assert _der(cert.get_certificate()) == _der(leaf_cert)
        assert len(cert.get_certificate_chain()) == 1

    def test_concurrent_download_fetches_once(self, chain_pem):
        class SlowAuthority(FakeAuthority):
            def request_certificate(self, url):
                time.sleep(0.05)
                return FakeAuthority.request_certificate(self, url)

        authority = SlowAuthority(chain_body=chain_pem, links=['<{}>;rel="alternate"'.format(ALT_1)])
        cert = Certificate(authority, CERT_URL)
        barrier = threading.Barrier(8)
        seen = []

        def worker():
            barrier.wait()
            seen.append((len(cert.get_certificate_chain()), len(cert.get_alternates())))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(authority.certificate_requests) == 1
        assert seen == [(2, 1)] * 8


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestAccessors:
    def test_get_certificate_is_end_entity(self, fake_authority, leaf_cert):
        cert = Certificate(fake_authority, CERT_URL)
        assert _der(cert.get_certificate()) == _der(leaf_cert)

    def test_accessor_wraps_load_failure(self, fake_authority):
        error = TransportError("connection refused", 999)
        fake_authority.download_errors.append(error)
        cert = Certificate(fake_authority, CERT_URL)

        with pytest.raises(LazyLoadError) as excinfo:
            cert.get_certificate()

        assert excinfo.value.cause is error
        assert excinfo.value.__cause__ is error
        assert excinfo.value.location == CERT_URL

    def test_chain_is_read_only(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        with pytest.raises(TypeError):
            cert.get_certificate_chain()[0] = None

    def test_no_alternates(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        assert len(cert.get_alternates()) == 0
        assert len(cert.get_alternate_certificates()) == 0

    def test_alternates_keep_order_and_resolve_relative_links(self, fake_authority):
        fake_authority.links = ['<{}>;rel="alternate", </acme/cert/5a3c9e1f2b7d4408/2>;rel="alternate"'.format(ALT_1)]
        cert = Certificate(fake_authority, CERT_URL)
        assert list(cert.get_alternates()) == [ALT_1, ALT_2]

    def test_alternate_certificates_are_bound_lazily_and_memoized(self, fake_authority):
        fake_authority.links = ['<{}>;rel="alternate"'.format(ALT_1), '<{}>;rel="alternate"'.format(ALT_2)]
        cert = Certificate(fake_authority, CERT_URL)

        alternates = cert.get_alternate_certificates()

        assert [a.location for a in alternates] == [ALT_1, ALT_2]
        assert all(a.state is State.UNLOADED for a in alternates)
        assert all(a.authority is fake_authority for a in alternates)
        assert cert.get_alternate_certificates() is alternates
        assert fake_authority.certificate_requests == [CERT_URL]


# ---------------------------------------------------------------------------
# PEM output
# ---------------------------------------------------------------------------


class TestWriteCertificate:
    def test_round_trip(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        out = io.StringIO()

        cert.write_certificate(out)

        parsed = tools.parse_certificate_chain(out.getvalue())
        assert [_der(c) for c in parsed] == [_der(c) for c in cert.get_certificate_chain()]

    def test_sink_is_not_closed(self, fake_authority):
        out = io.StringIO()
        Certificate(fake_authority, CERT_URL).write_certificate(out)
        assert not out.closed
        assert out.getvalue().startswith("-----BEGIN CERTIFICATE-----\n")
        assert out.getvalue().count("-----END CERTIFICATE-----") == 2

    def test_unencodable_certificate(self, fake_authority, monkeypatch):
        class Unencodable:
            serial_number = 1

            def public_bytes(self, encoding):
                raise ValueError("unsupported encoding")

        monkeypatch.setattr(tools, "parse_certificate_chain", lambda data: [Unencodable()])
        out = io.StringIO()

        with pytest.raises(tools.EncodingError):
            Certificate(fake_authority, CERT_URL).write_certificate(out)
        assert out.getvalue() == ""


# ---------------------------------------------------------------------------
# CertID and renewal information
# ---------------------------------------------------------------------------


class TestCertId:
    def test_golden_value(self, fake_authority):
        assert Certificate(fake_authority, CERT_URL).get_cert_id() == GOLDEN_CERT_ID_SHA256

    def test_no_issuer(self, issuer_pem):
        authority = FakeAuthority(chain_body=issuer_pem.encode("ascii"))
        with pytest.raises(ProtocolError):
            Certificate(authority, CERT_URL).get_cert_id()


class TestRenewalInfoLocation:
    @pytest.mark.parametrize("base", [
        "https://ca.example.org/acme/renewal-info",
        "https://ca.example.org/acme/renewal-info/",
    ])
    def test_exactly_one_slash(self, fake_authority, base):
        fake_authority.directory["renewalInfo"] = base
        cert = Certificate(fake_authority, CERT_URL)

        location = cert.get_renewal_info_location()

        assert location == "https://ca.example.org/acme/renewal-info/" + GOLDEN_CERT_ID_SHA256
        assert cert.has_renewal_info()

    def test_not_advertised(self, fake_authority):
        cert = Certificate(fake_authority, CERT_URL)
        assert cert.get_renewal_info_location() is None
        assert not cert.has_renewal_info()
        # the chain is not needed to find out
        assert fake_authority.certificate_requests == []

    def test_directory_failure_is_wrapped(self, fake_authority):
        error = TransportError("Could not retrieve directory", 500)
        fake_authority.directory_error = error
        cert = Certificate(fake_authority, CERT_URL)

        with pytest.raises(LazyLoadError) as excinfo:
            cert.has_renewal_info()
        assert excinfo.value.cause is error


class TestRenewalInfo:
    def test_unsupported(self, fake_authority):
        with pytest.raises(UnsupportedError) as excinfo:
            Certificate(fake_authority, CERT_URL).get_renewal_info()
        assert excinfo.value.feature == "renewalInfo"

    def test_fetched_and_memoized(self, fake_authority):
        base = "https://ca.example.org/acme/renewal-info"
        location = base + "/" + GOLDEN_CERT_ID_SHA256
        fake_authority.directory["renewalInfo"] = base
        fake_authority.resources[location] = ({
            "suggestedWindow": {"start": "2026-01-01T00:00:00Z", "end": "2026-01-03T00:00:00Z"},
        }, {})
        cert = Certificate(fake_authority, CERT_URL)

        info = cert.get_renewal_info()

        assert isinstance(info, RenewalInfo)
        assert info.location == location
        assert cert.get_renewal_info() is info
        assert fake_authority.resource_requests == [location]

    def test_fetch_failure_is_wrapped_and_not_cached(self, fake_authority):
        fake_authority.directory["renewalInfo"] = "https://ca.example.org/acme/renewal-info"
        cert = Certificate(fake_authority, CERT_URL)

        with pytest.raises(LazyLoadError) as excinfo:
            cert.get_renewal_info()
        assert isinstance(excinfo.value.cause, TransportError)
        assert excinfo.value.resource_type == "RenewalInfo"

        with pytest.raises(LazyLoadError):
            cert.get_renewal_info()
        assert len(fake_authority.resource_requests) == 2


class TestRenewalInfoWithAuthority:
    class Response:
        def __init__(self, body):
            self.headers = email.message.Message()
            self.body = body

        def read(self):
            return self.body

        def getcode(self):
            return 200

    def test_unparsable_directory_is_wrapped(self, monkeypatch):
        monkeypatch.setattr(tools, "get_url", lambda url, data=None, headers=None:
                            self.Response(b"<html>maintenance</html>"))
        authority = v2.ACMEAuthority({"authority": "https://ca.example.org"},
                                     ec.generate_private_key(ec.SECP256R1()))
        cert = Certificate(authority, CERT_URL)

        with pytest.raises(LazyLoadError) as excinfo:
            cert.has_renewal_info()
        assert isinstance(excinfo.value.cause, ProtocolError)

        with pytest.raises(LazyLoadError):
            cert.get_renewal_info_location()
