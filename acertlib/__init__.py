#!/usr/bin/env python
# -*- coding: utf-8 -*-

# acertlib - client side handling of certificates issued via ACME
# Copyright (c) Markus Hauschild & David Klaftenegger, 2016.
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

from acertlib import tools
from acertlib.authority import authority
from acertlib.certificate import Certificate, RevocationReason, revoke_with_account, revoke_with_domain_key
from acertlib.tools import log


# @brief bind a certificate issued by the authority configured in settings
# @param settings the authority configuration options
# @param location url of the certificate
def bind_certificate(settings, location):
    return Certificate(authority(settings), location)


# @brief revoke a certificate file
# @param cert_file PEM file of the certificate to revoke
# @param settings the authority configuration options
# @param reason optional RevocationReason
# @param domain_key_file PEM file of the certificate key, revoke without account if given
def cert_revoke(cert_file, settings, reason=None, domain_key_file=None):
    cert = tools.read_pem_file(cert_file)
    acme = authority(settings)
    if domain_key_file:
        log("Revoking {} with the certificate key from {}".format(cert_file, domain_key_file))
        revoke_with_domain_key(acme, tools.read_pem_file(domain_key_file, key=True), cert, reason)
    else:
        log("Revoking {} with the account key".format(cert_file))
        revoke_with_account(acme, cert, reason)
