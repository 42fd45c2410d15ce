#!/usr/bin/env python
# -*- coding: utf-8 -*-

# acertlib - generic acme api functions
# Copyright (c) Markus Hauschild & David Klaftenegger, 2016.
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

from acertlib.tools import UnsupportedError


class ACMEAuthority:
    # @brief Init class with config
    # @param config Configuration data
    # @param key Account key data
    def __init__(self, config, key):
        self.key = key
        self.config = config

    # @brief url of a resource listed in the authority directory
    # @param name the directory entry (e.g. revokeCert)
    # @raise UnsupportedError if the authority does not offer the resource
    def resource_url(self, name):
        url = self.resource_url_optional(name)
        if url is None:
            raise UnsupportedError(name)
        return url

    # @brief url of a resource listed in the authority directory
    # @param name the directory entry (e.g. renewalInfo)
    # @return the url or None if the authority does not offer the resource
    def resource_url_optional(self, name):
        raise NotImplementedError

    # @brief download a certificate chain
    # @param url location of the certificate
    # @return the raw response body and the response headers
    def request_certificate(self, url):
        raise NotImplementedError

    # @brief fetch an unauthenticated JSON resource
    # @param url location of the resource
    # @return the parsed JSON document and the response headers
    def request_resource(self, url):
        raise NotImplementedError

    # @brief send a signed request to the authority
    # @param url the target url
    # @param payload the request payload (dict)
    # @param key sign with this key (embedded as jwk) instead of the account key
    def send_signed_request(self, url, payload, key=None):
        raise NotImplementedError
