#!/usr/bin/env python
# -*- coding: utf-8 -*-

# certificate - issued certificate resource and revocation
# Copyright (c) Markus Hauschild & David Klaftenegger, 2016.
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

import enum
import threading

from acertlib import certid, tools
from acertlib.renewal_info import RenewalInfo
from acertlib.tools import log, AcmeError, LazyLoadError, ProtocolError, UnsupportedError

REVOKE_CERT = "revokeCert"
RENEWAL_INFO = "renewalInfo"


# revocation reasons (see https://tools.ietf.org/html/rfc5280#section-5.3.1)
class RevocationReason(enum.IntEnum):
    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    # 7 is unused
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10


class State(enum.Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


# @brief an issued certificate and its issuer chain, downloaded on first use
# @note a certificate is immutable once issued, the chain is never downloaded again after success.
#       Renewed certificates need a new instance.
class Certificate:
    # @brief bind a certificate resource (nothing is downloaded yet)
    # @param authority the authority the certificate was issued by
    # @param location url of the certificate
    def __init__(self, authority, location):
        self.authority = authority
        self.location = location
        self.state = State.UNLOADED
        self._lock = threading.RLock()
        # chain and alternates are always assigned together as one tuple
        self._loaded = None
        self._alternate_certs = None
        self._cert_id = None
        self._renewal_info = None

    def __repr__(self):
        return "Certificate({!r}, {})".format(self.location, self.state.value)

    # @brief download the certificate chain, does nothing if it was downloaded already
    # @raise AcmeError if the chain could not be downloaded, a later call will try again
    def download(self):
        if self.state is State.LOADED:
            return
        with self._lock:
            if self.state is State.LOADED:
                return
            log("Downloading certificate from {}".format(self.location))
            body, headers = self.authority.request_certificate(self.location)
            alternates = tuple(tools.get_links(headers, 'alternate', self.location))
            chain = tuple(tools.parse_certificate_chain(body))
            self._loaded = (chain, alternates)
            self.state = State.LOADED

    def _lazy_download(self):
        try:
            self.download()
        except AcmeError as e:
            raise LazyLoadError("Certificate", self.location, e) from e
        return self._loaded

    # @brief the end-entity certificate
    def get_certificate(self):
        chain, _ = self._lazy_download()
        return chain[0]

    # @brief the end-entity certificate followed by the issuer chain (read-only)
    def get_certificate_chain(self):
        chain, _ = self._lazy_download()
        return chain

    # @brief urls of alternate certificate chains (may be empty)
    def get_alternates(self):
        _, alternates = self._lazy_download()
        return alternates

    # @brief alternate certificate chains as (not yet downloaded) certificate resources
    def get_alternate_certificates(self):
        alternates = self.get_alternates()
        with self._lock:
            if self._alternate_certs is None:
                self._alternate_certs = tuple(Certificate(self.authority, url) for url in alternates)
            return self._alternate_certs

    # @brief write the certificate chain in PEM format, end-entity certificate first
    # @param out text sink, it is not closed
    def write_certificate(self, out):
        for cert in self.get_certificate_chain():
            tools.write_pem(tools.convert_cert_to_der_bytes(cert), "CERTIFICATE", out)

    # @brief the RFC6960 CertID of this certificate (base64url encoded)
    # @raise ProtocolError if the chain does not contain the issuer
    def get_cert_id(self):
        with self._lock:
            if self._cert_id is None:
                chain = self.get_certificate_chain()
                if len(chain) < 2:
                    raise ProtocolError("Certificate has no issuer")
                self._cert_id = certid.cert_id(certid.DEFAULT_HASH_ALGORITHM, chain[1], chain[0].serial_number)
            return self._cert_id

    # @brief location of the renewal information for this certificate
    # @return the url or None if the authority does not provide renewal information
    def get_renewal_info_location(self):
        try:
            base = self.authority.resource_url_optional(RENEWAL_INFO)
        except AcmeError as e:
            raise LazyLoadError("Certificate", self.location, e) from e
        if base is None:
            return None
        if not base.endswith('/'):
            base += '/'
        return base + self.get_cert_id()

    def has_renewal_info(self):
        return self.get_renewal_info_location() is not None

    # @brief the renewal information of this certificate
    # @raise UnsupportedError if the authority does not provide renewal information
    def get_renewal_info(self):
        with self._lock:
            if self._renewal_info is None:
                location = self.get_renewal_info_location()
                if location is None:
                    raise UnsupportedError(RENEWAL_INFO)
                renewal_info = RenewalInfo(self.authority, location)
                try:
                    renewal_info.update()
                except AcmeError as e:
                    raise LazyLoadError("RenewalInfo", location, e) from e
                self._renewal_info = renewal_info
            return self._renewal_info

    # @brief revoke this certificate using the account key
    # @param reason optional RevocationReason
    def revoke(self, reason=None):
        revoke_with_account(self.authority, self.get_certificate(), reason)


# @brief build the revokeCert payload
# @param crt the certificate (cryptography format or DER bytes)
# @param reason optional revocation reason, omitted from the payload if None
def _revocation_payload(crt, reason):
    if isinstance(crt, (bytes, bytearray)):
        der = bytes(crt)
    else:
        der = tools.convert_cert_to_der_bytes(crt)
    payload = {'certificate': tools.bytes_to_base64url(der)}
    if reason is not None:
        payload['reason'] = int(RevocationReason(reason))
    return payload


def _serial_of(crt):
    if isinstance(crt, (bytes, bytearray)):
        crt = tools.convert_der_bytes_to_cert(bytes(crt))
    return "{:x}".format(crt.serial_number)


# @brief revoke a certificate with the account key of the given authority
# @param authority the authority the certificate was issued by
# @param crt the certificate to revoke (cryptography format or DER bytes)
# @param reason optional RevocationReason
def revoke_with_account(authority, crt, reason=None):
    payload = _revocation_payload(crt, reason)
    log("Revoking certificate {} using the account key".format(_serial_of(crt)))
    authority.send_signed_request(authority.resource_url(REVOKE_CERT), payload)
    log("Revocation successful")


# @brief revoke a certificate with the key pair the certificate request was signed with
# @param authority the authority the certificate was issued by (no account is used)
# @param domain_key the private key of the certificate
# @param crt the certificate to revoke (cryptography format or DER bytes)
# @param reason optional RevocationReason
def revoke_with_domain_key(authority, domain_key, crt, reason=None):
    payload = _revocation_payload(crt, reason)
    log("Revoking certificate {} using the domain key".format(_serial_of(crt)))
    authority.send_signed_request(authority.resource_url(REVOKE_CERT), payload, key=domain_key)
    log("Revocation successful")
