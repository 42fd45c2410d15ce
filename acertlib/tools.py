#!/usr/bin/env python
# -*- coding: utf-8 -*-

# acertlib - various support functions
# Copyright (c) Markus Hauschild & David Klaftenegger, 2016.
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

import base64
import io
import json
import os
import re
import sys
import traceback
from urllib.parse import urljoin
from urllib.request import urlopen, Request

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa, ec, ed25519, ed448, padding
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.utils import int_to_bytes

PEM_CERTIFICATE_RE = re.compile(r'-----BEGIN CERTIFICATE-----[^\-]+-----END CERTIFICATE-----', re.DOTALL)
LINK_RE = re.compile(r'<([^>]*)>\s*((?:;\s*[^;,]*)*)')
LINK_REL_RE = re.compile(r';\s*rel\s*=\s*"?([^";]*)"?')


class AcmeError(Exception):
    pass


# @brief communication with the authority failed or the authority rejected the request
class TransportError(AcmeError):
    def __init__(self, msg, code=None, problem=None):
        AcmeError.__init__(self, msg)
        self.code = code
        self.problem = problem if problem is not None else {}

    @property
    def type(self):
        return self.problem.get('type')

    @property
    def detail(self):
        return self.problem.get('detail')


class EncodingError(AcmeError):
    pass


class ProtocolError(AcmeError):
    pass


class UnsupportedError(AcmeError):
    def __init__(self, feature):
        AcmeError.__init__(self, "Authority does not support {}".format(feature))
        self.feature = feature


# @brief a resource could not be loaded on access, the original error is kept as cause
class LazyLoadError(AcmeError):
    def __init__(self, resource_type, location, cause):
        AcmeError.__init__(self, "{} {}: {}".format(resource_type, location, cause))
        self.resource_type = resource_type
        self.location = location
        self.cause = cause
        self.__cause__ = cause


# @brief a simple, portable indent function
def indent(text, spaces=0):
    ind = ' ' * spaces
    return os.linesep.join(ind + line for line in text.splitlines())


# @brief wrapper for log output
def log(msg, exc=None, error=False, warning=False):
    if error:
        prefix = "Error: "
    elif warning:
        prefix = "Warning: "
    else:
        prefix = ""

    output = prefix + msg
    if exc:
        formatted_exc = traceback.format_exception(type(exc), exc, exc.__traceback__)
        output += os.linesep + indent(''.join(formatted_exc), len(prefix))

    if error or warning:
        sys.stderr.write(output + os.linesep)
        sys.stderr.flush()  # force flush buffers after message was written for immediate display
    else:
        sys.stdout.write(output + os.linesep)
        sys.stdout.flush()  # force flush buffers after message was written for immediate display


# @brief wrapper for downloading an url
def get_url(url, data=None, headers=None):
    return urlopen(Request(url, data=data, headers={} if headers is None else headers))


# @brief build a TransportError from an error response of the authority
# @param code the http status code
# @param body the response body (problem document as str/dict or anything else)
def transport_error(msg, code, body):
    problem = body
    if isinstance(problem, (bytes, bytearray)):
        problem = problem.decode('utf-8', 'replace')
    if isinstance(problem, str):
        try:
            problem = json.loads(problem)
        except ValueError:
            problem = {'detail': problem} if problem else {}
    if not isinstance(problem, dict):
        problem = {}
    detail = problem.get('detail') or problem.get('type') or 'no details'
    return TransportError("{} ({}): {}".format(msg, code, detail), code, problem)


# @brief extract the link targets of a relation from response headers
# @param headers response headers (http.client.HTTPMessage or dict)
# @param relation the link relation to look for (e.g. 'alternate')
# @param base url to resolve relative targets against
# @return the targets in the order they were sent
def get_links(headers, relation, base=None):
    if headers is None:
        return []
    if getattr(headers, 'get_all', None):
        values = headers.get_all('Link') or []
    else:
        value = headers.get('Link')
        if value is None:
            values = []
        elif isinstance(value, (list, tuple)):
            values = list(value)
        else:
            values = [value]

    links = list()
    for value in values:
        for target, params in LINK_RE.findall(value):
            rels = LINK_REL_RE.findall(params)
            if any(relation in rel.split() for rel in rels):
                links.append(urljoin(base, target) if base else target)
    return links


# @brief read a key or certificate from file
# @param path path to file
# @param key indicate whether we are loading a key
# @return the key or certificate in cryptography format
def read_pem_file(path, key=False):
    with io.open(path, 'r') as f:
        if key:
            return serialization.load_pem_private_key(f.read().encode('utf-8'), None)
        else:
            return convert_pem_str_to_cert(f.read())


# @brief convert certificate to PEM format
# @param cert certificate object in cryptography format
# @return the certificate in PEM format
def convert_cert_to_pem_str(cert):
    return cert.public_bytes(serialization.Encoding.PEM).decode('utf8')


# @brief load a PEM certificate from str
def convert_pem_str_to_cert(certdata):
    try:
        return x509.load_pem_x509_certificate(certdata.encode('utf8'))
    except ValueError as e:
        raise EncodingError("Invalid PEM certificate") from e


# @brief serialize cert/csr to DER bytes
def convert_cert_to_der_bytes(data):
    try:
        return data.public_bytes(serialization.Encoding.DER)
    except (ValueError, TypeError) as e:
        raise EncodingError("Could not encode certificate") from e


# @brief load a DER certificate from bytes
def convert_der_bytes_to_cert(data):
    try:
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise EncodingError("Invalid DER certificate") from e


# @brief parse a certificate chain as sent by the authority
# @param data PEM chain (str or bytes) or a single DER certificate
# @return list of certificates, end-entity first
def parse_certificate_chain(data):
    if isinstance(data, str):
        data = data.encode('utf-8')
    if b'-----BEGIN' in data:
        pems = PEM_CERTIFICATE_RE.findall(data.decode('ascii', 'replace'))
        if len(pems) == 0:
            raise EncodingError("No certificate found in PEM chain")
        return [convert_pem_str_to_cert(pem) for pem in pems]
    if len(data) == 0:
        raise EncodingError("Empty certificate chain")
    return [convert_der_bytes_to_cert(bytes(data))]


# @brief write a single PEM block
# @param data the DER encoded content
# @param label the PEM label (e.g. CERTIFICATE)
# @param out text sink to write to, left open
def write_pem(data, label, out):
    encoded = base64.b64encode(data).decode('ascii')
    out.write("-----BEGIN {}-----\n".format(label))
    for i in range(0, len(encoded), 64):
        out.write(encoded[i:i + 64])
        out.write("\n")
    out.write("-----END {}-----\n".format(label))


# @brief determine key signing algorithm and jwk data
# @return key algorithm, signature algorithm, key numbers as a dict
def get_key_alg_and_jwk(key):
    if isinstance(key, rsa.RSAPrivateKey):
        # See https://tools.ietf.org/html/rfc7518#section-6.3
        numbers = key.public_key().public_numbers()
        return "RS256", {"kty": "RSA",
                         "e": bytes_to_base64url(int_to_bytes(numbers.e)),
                         "n": bytes_to_base64url(int_to_bytes(numbers.n))}
    elif isinstance(key, ec.EllipticCurvePrivateKey):
        # See https://tools.ietf.org/html/rfc7518#section-6.2
        numbers = key.public_key().public_numbers()
        if isinstance(numbers.curve, ec.SECP256R1):
            alg = 'ES256'
            crv = 'P-256'
        elif isinstance(numbers.curve, ec.SECP384R1):
            alg = 'ES384'
            crv = 'P-384'
        elif isinstance(numbers.curve, ec.SECP521R1):
            alg = 'ES512'
            crv = 'P-521'
        else:
            raise ValueError("Unsupported EC curve in key: {}".format(key))
        full_octets = (int(crv[2:]) + 7) // 8
        return alg, {"kty": "EC", "crv": crv,
                     "x": bytes_to_base64url(int_to_bytes(numbers.x, full_octets)),
                     "y": bytes_to_base64url(int_to_bytes(numbers.y, full_octets))}
    elif isinstance(key, ed25519.Ed25519PrivateKey):
        # See https://tools.ietf.org/html/rfc8037#appendix-A.2
        return "EdDSA", {"kty": "OKP", "crv": "Ed25519",
                         "x": bytes_to_base64url(key.public_key().public_bytes(encoding=serialization.Encoding.Raw,
                                                                               format=serialization.PublicFormat.Raw)
                                                 )}
    elif isinstance(key, ed448.Ed448PrivateKey):
        return "EdDSA", {"kty": "OKP", "crv": "Ed448",
                         "x": bytes_to_base64url(key.public_key().public_bytes(encoding=serialization.Encoding.Raw,
                                                                               format=serialization.PublicFormat.Raw)
                                                 )}
    else:
        raise ValueError("Unsupported key: {}".format(key))


# @brief sign string with key
def signature_of_str(key, string):
    alg, _ = get_key_alg_and_jwk(key)
    data = string.encode('utf8')
    if alg == 'RS256':
        return key.sign(data, padding.PKCS1v15(), hashes.SHA256())
    elif alg.startswith('ES'):
        full_octets = (key.curve.key_size + 7) // 8
        if alg == 'ES256':
            der_sig = key.sign(data, ec.ECDSA(hashes.SHA256()))
        elif alg == 'ES384':
            der_sig = key.sign(data, ec.ECDSA(hashes.SHA384()))
        elif alg == 'ES512':
            der_sig = key.sign(data, ec.ECDSA(hashes.SHA512()))
        else:
            raise ValueError("Unsupported EC signature algorithm: {}".format(alg))
        # convert DER signature to RAW format (https://tools.ietf.org/html/rfc7518#section-3.4)
        r, s = decode_dss_signature(der_sig)
        return int_to_bytes(r, full_octets) + int_to_bytes(s, full_octets)
    elif alg == 'EdDSA':
        return key.sign(data)
    else:
        raise ValueError("Unsupported signature algorithm: {}".format(alg))


# @brief helper function to base64 encode for JSON objects
# @param b the byte-string to encode
# @return the encoded string
def bytes_to_base64url(b):
    return base64.urlsafe_b64encode(b).decode('utf8').replace("=", "")
