#!/usr/bin/env python
# -*- coding: utf-8 -*-

# acertlib - acme api v2 functions (implements RFC8555)
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

import copy
import json
import time

from acertlib import tools
from acertlib.authority.acme import ACMEAuthority as AbstractACMEAuthority
from acertlib.tools import log

# Maximum age for nonce values (Boulder invalidates them after some time, so we use a low value of 2 minutes here)
MAX_NONCE_AGE = 120

BAD_NONCE_ERROR = "urn:ietf:params:acme:error:badNonce"
PEM_CHAIN_CONTENT_TYPE = "application/pem-certificate-chain"


class ACMEAuthority(AbstractACMEAuthority):
    # @brief Init class with config
    # @param config Configuration data
    # @param key Account key data
    def __init__(self, config, key):
        AbstractACMEAuthority.__init__(self, config, key)
        # Initialize config vars
        self.ca = config['authority']

        # Initialize runtime vars
        self.directory = None  # will be retrieved on first use
        self.nonce = None
        self.nonce_time = 0

        self.algorithm, jwk = tools.get_key_alg_and_jwk(key)
        self.account_protected = {
            "alg": self.algorithm,
            "jwk": jwk
        }
        # will be looked up on first account request if not configured
        self.account_id = config.get('account_url')

    # @brief fetch a given url
    def _request_url(self, url, data=None, raw_result=False, accept=None):
        header = {'Content-Type': 'application/jose+json'}
        if accept:
            header['Accept'] = accept
        if data:
            # Always encode data to bytes
            data = data.encode('utf-8')
        try:
            resp = tools.get_url(url, data, header)
        except IOError as e:
            self._store_nonce(getattr(e, "headers", None))
            body = getattr(e, "read", e.__str__)()
            if getattr(body, 'decode', None):
                # Decode function available? Use it to get a proper str
                body = body.decode('utf-8', 'replace')
            return getattr(e, "code", 999), body, getattr(e, "headers", None) or {}

        self._store_nonce(resp.headers)

        body = resp.read()
        if raw_result:
            return resp.getcode(), body, resp.headers

        if getattr(body, 'decode', None):
            # Decode function available? Use it to get a proper str
            body = body.decode('utf-8')
        if len(body) > 0:
            try:
                body = json.loads(body)
            except json.JSONDecodeError as e:
                raise tools.ProtocolError('Could not parse non-raw result (expected JSON)') from e

        return resp.getcode(), body, resp.headers

    # @brief Store next Replay-Nonce if it is in the header
    def _store_nonce(self, headers):
        if headers and 'Replay-Nonce' in headers:
            self.nonce = headers['Replay-Nonce']
            self.nonce_time = time.time()

    # @brief fetch an url with a signed request
    # @param key sign with this key and embed it as jwk (account key and kid otherwise)
    def _request_acme_url(self, url, payload=None, protected=None, raw_result=False, key=None, accept=None,
                          retry=True):
        if not protected:
            protected = {}

        if payload is not None:
            payload64 = tools.bytes_to_base64url(json.dumps(payload).encode('utf8'))
        else:
            payload64 = ""  # for POST-as-GET

        # Request a new nonce if there is none in cache
        if not self.nonce or time.time() > self.nonce_time + MAX_NONCE_AGE:
            self._request_url(self.resource_url('newNonce'))
        # Set request nonce to current cache value
        protected["nonce"] = self.nonce
        # Reset nonce cache as we are using it's current value
        self.nonce = None

        protected["url"] = url
        if key is None:
            signing_key = self.key
            protected["alg"] = self.algorithm
            if self.account_id:
                protected["kid"] = self.account_id
        else:
            signing_key = key
            protected["alg"], protected["jwk"] = tools.get_key_alg_and_jwk(key)
        protected64 = tools.bytes_to_base64url(json.dumps(protected).encode('utf8'))
        out = tools.signature_of_str(signing_key, '.'.join([protected64, payload64]))
        data = json.dumps({
            "protected": protected64,
            "payload": payload64,
            "signature": tools.bytes_to_base64url(out),
        })
        code, body, headers = self._request_url(url, data, raw_result, accept)

        # retry once on badNonce, the error response carries a fresh nonce
        if retry and code == 400 and tools.transport_error(url, code, body).type == BAD_NONCE_ERROR:
            log("Nonce rejected by {}, retrying request".format(self.ca), warning=True)
            return self._request_acme_url(url, payload, protected, raw_result, key, accept, retry=False)
        return code, body, headers

    # @brief send a signed request to authority
    def _request_acme_endpoint(self, request, payload=None, protected=None, raw_result=False):
        return self._request_acme_url(self.resource_url(request), payload, protected, raw_result)

    # @brief retrieve the authority directory (once)
    def get_directory(self):
        if self.directory is None:
            code, directory, _ = self._request_url(self.ca + '/directory')
            if code >= 400 or not isinstance(directory, dict):
                log("API directory retrieval failed ({}) from {}".format(code, self.ca), warning=True)
                raise tools.transport_error("Could not retrieve directory", code, directory)
            self.directory = directory
        return self.directory

    def resource_url_optional(self, name):
        return self.get_directory().get(name)

    # @brief determine the account url for the account key
    # @note accounts are never created here, the account must exist already
    def login(self):
        if self.account_id:
            # We already know our account on this authority, just return
            return

        protected = copy.deepcopy(self.account_protected)
        code, result, headers = self._request_acme_endpoint("newAccount", {"onlyReturnExisting": True}, protected)
        if code < 400 and 'Location' in headers:
            self.account_id = headers['Location']
            log("Using account {} on {}.".format(self.account_id, self.ca))
        else:
            raise tools.transport_error("Error looking up account", code, result)

    def request_certificate(self, url):
        self.login()
        code, body, headers = self._request_acme_url(url, raw_result=True, accept=PEM_CHAIN_CONTENT_TYPE)
        if code >= 400:
            raise tools.transport_error("Error downloading certificate chain", code, body)
        return body, headers

    def request_resource(self, url):
        code, body, headers = self._request_url(url)
        if code >= 400:
            raise tools.transport_error("Error fetching {}".format(url), code, body)
        return body, headers

    def send_signed_request(self, url, payload, key=None):
        if key is None:
            self.login()
        code, result, headers = self._request_acme_url(url, payload, key=key)
        if code >= 400:
            raise tools.transport_error("Request to {} failed".format(url), code, result)
        return result, headers
