#!/usr/bin/env python
# -*- coding: utf-8 -*-

# renewal_info - ACME renewal information (ARI) resource
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

import datetime
import email.utils
import random
import re
import threading

from acertlib.tools import ProtocolError

TIMESTAMP_RE = re.compile(r'^(?P<base>[^.]+?)(?:\.(?P<fraction>\d+))?(?P<tz>Z|[+-]\d\d:?\d\d)?$', re.IGNORECASE)


# @brief parse a RFC3339 timestamp into an aware datetime
def parse_timestamp(value):
    match = TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError("Invalid timestamp: {}".format(value))
    text = match.group('base')
    if match.group('fraction'):
        # datetime only supports microseconds
        text += "." + match.group('fraction')[:6].ljust(6, '0')
    tz = match.group('tz')
    if not tz or tz.upper() == 'Z':
        tz = '+00:00'
    timestamp = datetime.datetime.fromisoformat(text + tz)
    return timestamp.astimezone(datetime.timezone.utc)


# @brief parse a Retry-After header (delay in seconds or http date)
def parse_retry_after(value, now):
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return now + datetime.timedelta(seconds=int(value))
    try:
        retry_after = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_after.tzinfo is None:
        retry_after = retry_after.replace(tzinfo=datetime.timezone.utc)
    return retry_after


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


# @brief the given point in time as aware UTC datetime (naive values are taken as UTC, None is now)
def _as_utc(value):
    if value is None:
        return _utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


# @brief renewal information of a certificate as provided by the authority
class RenewalInfo:
    # @param authority the authority providing the renewal information
    # @param location url of the renewal information
    def __init__(self, authority, location):
        self.authority = authority
        self.location = location
        self._lock = threading.Lock()
        self._data = None

    def __repr__(self):
        return "RenewalInfo({!r})".format(self.location)

    # @brief (re-)fetch the renewal information
    def update(self):
        document, headers = self.authority.request_resource(self.location)
        now = _utcnow()
        try:
            window = document['suggestedWindow']
            start = parse_timestamp(window['start'])
            end = parse_timestamp(window['end'])
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ProtocolError("Invalid renewal information at {}".format(self.location)) from e
        if end < start:
            raise ProtocolError("Suggested renewal window at {} ends before it starts".format(self.location))

        data = {
            'start': start,
            'end': end,
            'explanation_url': document.get('explanationURL'),
            'retry_after': parse_retry_after(headers.get('Retry-After') if headers else None, now),
        }
        with self._lock:
            self._data = data

    def _get(self, name):
        if self._data is None:
            self.update()
        return self._data[name]

    def get_suggested_window_start(self):
        return self._get('start')

    def get_suggested_window_end(self):
        return self._get('end')

    # @brief url of a document explaining the suggested window (optional)
    def get_explanation_url(self):
        return self._get('explanation_url')

    # @brief point in time when the renewal information should be checked again (optional)
    def get_retry_after(self):
        return self._get('retry_after')

    # @brief the suggested window has not started at the given time (default: now)
    def renewal_is_not_required(self, at=None):
        at = _as_utc(at)
        return at < self.get_suggested_window_start()

    # @brief the given time (default: now) is within the suggested window
    def renewal_is_recommended(self, at=None):
        at = _as_utc(at)
        return self.get_suggested_window_start() <= at < self.get_suggested_window_end()

    # @brief the suggested window is over at the given time (default: now)
    def renewal_is_overdue(self, at=None):
        at = _as_utc(at)
        return at >= self.get_suggested_window_end()

    # @brief pick a random time for the renewal within the suggested window
    # @param frequency (timedelta) interval of the renewal checks, the proposal leaves at least this much time
    #                  before the window ends
    # @param now the current time (default: now)
    # @return the proposed time or None if there is no time left in the window
    def get_random_proposal(self, frequency=None, now=None):
        now = _as_utc(now)
        start = max(self.get_suggested_window_start(), now)
        end = self.get_suggested_window_end()
        if frequency is not None:
            end -= frequency
        if end <= start:
            return None
        return start + datetime.timedelta(seconds=random.uniform(0, (end - start).total_seconds()))
