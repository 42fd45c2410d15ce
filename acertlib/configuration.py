#!/usr/bin/env python
# -*- coding: utf-8 -*-

# config - acertlib config parser
# Copyright (c) Markus Hauschild & David Klaftenegger, 2016.
# Copyright (c) Rudolf Mayerhofer, 2019.
# available under the ISC license, see LICENSE

import io
import json
import os

# Configuration defaults to use if not specified otherwise
DEFAULT_CONF_DIR = "/etc/acertlib"
DEFAULT_CONF_FILENAME = "acertlib.conf"
DEFAULT_API = "v2"
DEFAULT_AUTHORITY = "https://acme-v02.api.letsencrypt.org"


# @brief update config[name] with value from localconfig>globalconfig>default
def update_config_value(config, name, localconfig, globalconfig, default):
    values = [x[name] for x in localconfig if name in x]
    if len(values) > 0:
        config[name] = values[0]
    else:
        config[name] = globalconfig.get(name, default)


# @brief parse authority from config
# @param localconfig list of more specific configuration dicts (first match wins)
# @param globalconfig the global configuration
# @param work_dir directory holding the account key if not configured otherwise
def parse_authority(localconfig, globalconfig, work_dir):
    authority = {}
    # - API version
    update_config_value(authority, 'api', localconfig, globalconfig, DEFAULT_API)

    # - Certificate authority
    update_config_value(authority, 'authority', localconfig, globalconfig, DEFAULT_AUTHORITY)

    # - Account key path
    update_config_value(authority, 'account_key', localconfig, globalconfig,
                        os.path.join(work_dir, "account.key"))

    # - Account url (looked up with the account key if not set)
    update_config_value(authority, 'account_url', localconfig, globalconfig, None)

    return authority


# @brief read a configuration file (JSON or YAML)
def read_config_file(path):
    with io.open(path) as config_fd:
        try:
            return json.load(config_fd)
        except ValueError:
            import yaml
            config_fd.seek(0)
            return yaml.safe_load(config_fd)


# @brief load the authority configuration from a file
# @param config_file global configuration file (default: $DEFAULT_CONF_DIR/$DEFAULT_CONF_FILENAME)
# @param work_dir persistent work data directory (default: directory of the configuration file)
# @param overrides dict of values taking precedence over the configuration file (e.g. from the command line)
# @return the authority settings
def load(config_file=None, work_dir=None, overrides=None):
    if not config_file:
        config_file = os.path.join(DEFAULT_CONF_DIR, DEFAULT_CONF_FILENAME)
    if not work_dir:
        work_dir = os.path.dirname(os.path.abspath(config_file))

    # Global configuration: Load from file
    globalconfig = dict()
    if os.path.isfile(config_file):
        globalconfig = read_config_file(config_file) or dict()

    # Local configuration: values set by the caller
    localconfig = [overrides] if overrides else []

    return parse_authority(localconfig, globalconfig, work_dir)
