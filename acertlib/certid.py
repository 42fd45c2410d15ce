#!/usr/bin/env python
# -*- coding: utf-8 -*-

# certid - RFC6960 CertID encoding (as used for ACME renewal information)
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

from asn1crypto import algos, core
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives import hashes

from acertlib import tools
from acertlib.tools import EncodingError

DEFAULT_HASH_ALGORITHM = 'sha256'

HASH_ALGORITHMS = {
    'sha1': hashes.SHA1,
    'sha224': hashes.SHA224,
    'sha256': hashes.SHA256,
    'sha384': hashes.SHA384,
    'sha512': hashes.SHA512,
}


# AlgorithmIdentifier with absent parameters (algos.DigestAlgorithm always encodes NULL)
class HashAlgorithm(core.Sequence):
    _fields = [
        ('algorithm', algos.DigestAlgorithmId),
    ]


class CertId(core.Sequence):
    _fields = [
        ('hash_algorithm', HashAlgorithm),
        ('issuer_name_hash', core.OctetString),
        ('issuer_key_hash', core.OctetString),
        ('serial_number', core.Integer),
    ]


# @brief hash data with the named algorithm
def hash_of_bytes(hash_algorithm, data):
    digest = hashes.Hash(HASH_ALGORITHMS[hash_algorithm]())
    digest.update(data)
    return digest.finalize()


# @brief load the issuer certificate into its asn1 structure
# @param issuer the issuer certificate (cryptography certificate or DER bytes)
def _load_issuer(issuer):
    if not isinstance(issuer, (bytes, bytearray)):
        issuer = tools.convert_cert_to_der_bytes(issuer)
    try:
        parsed = asn1_x509.Certificate.load(bytes(issuer))
        subject = parsed.subject.dump()
        public_key = bytes(parsed.public_key['public_key'])
    except (ValueError, TypeError, KeyError) as e:
        raise EncodingError("Could not parse issuer certificate") from e
    return subject, public_key


# @brief encode the CertID of a certificate
# @param hash_algorithm name of the hash algorithm (see HASH_ALGORITHMS)
# @param issuer the issuer certificate (cryptography certificate or DER bytes)
# @param serial_number serial number of the certificate (int)
# @return the DER encoded CertID structure
def encode_cert_id(hash_algorithm, issuer, serial_number):
    if hash_algorithm not in HASH_ALGORITHMS:
        raise EncodingError("Unsupported hash algorithm: {}".format(hash_algorithm))
    subject, public_key = _load_issuer(issuer)
    try:
        return CertId({
            'hash_algorithm': {'algorithm': hash_algorithm},
            'issuer_name_hash': hash_of_bytes(hash_algorithm, subject),
            'issuer_key_hash': hash_of_bytes(hash_algorithm, public_key),
            'serial_number': serial_number,
        }).dump()
    except (ValueError, TypeError) as e:
        raise EncodingError("Could not encode CertID") from e


# @brief determine the base64url text form of a CertID
def cert_id(hash_algorithm, issuer, serial_number):
    return tools.bytes_to_base64url(encode_cert_id(hash_algorithm, issuer, serial_number))
