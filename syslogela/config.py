# coding: utf-8

"""Configuration file of syslogela.

The file follows the configparser (INI) syntax::

    [general]
    catalog_dir = /etc/ppc64-diag/message_catalog
    messages_path = /var/log/messages
    regex_policy = compute
    format_compiler = builtin
    regex_converter = regex_converter

    [ingest]
    explain_line_size = 256
    svclog_line_size = 512
    follow_interval = 2
    bookmark_path = /var/log/ppc64-diag/last_syslog_event

    [servicelog]
    url = sqlite:////var/lib/syslogela/servicelog.db

    [vpd]
    provider = lsvpd
    devtree_root = /proc/device-tree

All options are optional; missing ones take the values above.
"""

import configparser
import logging
import os

from . import catalog
from ._common import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/syslogela/syslogela.conf"

DEFAULTS = {
    "general": {
        "catalog_dir": "/etc/ppc64-diag/message_catalog",
        "messages_path": "/var/log/messages",
        "regex_policy": catalog.REGEX_COMPUTE,
        "format_compiler": "builtin",
        "regex_converter": "regex_converter",
    },
    "ingest": {
        "explain_line_size": "256",
        "svclog_line_size": "512",
        "follow_interval": "2",
        "bookmark_path": "/var/log/ppc64-diag/last_syslog_event",
    },
    "servicelog": {
        "url": "sqlite:////var/lib/syslogela/servicelog.db",
    },
    "vpd": {
        "provider": "lsvpd",
        "devtree_root": "/proc/device-tree",
    },
}

_CHOICES = {
    ("general", "regex_policy"): catalog.REGEX_POLICIES,
    ("general", "format_compiler"): ("builtin", "external"),
    ("vpd", "provider"): ("lsvpd", "none"),
}


class Config:
    """Validated configuration values.

    Args:
        conf (configparser.ConfigParser): parsed configuration,
            on top of :data:`DEFAULTS`.

    Raises:
        ConfigError: for invalid values.
    """

    def __init__(self, conf):
        for (section, option), choices in _CHOICES.items():
            value = conf[section][option]
            if value not in choices:
                raise ConfigError("invalid {0}.{1}: {2} (choose from {3})".format(
                    section, option, value, ", ".join(choices)))

        general = conf["general"]
        self.catalog_dir = general["catalog_dir"]
        self.messages_path = general["messages_path"]
        self.regex_policy = general["regex_policy"]
        self.format_compiler = general["format_compiler"]
        self.regex_converter = general["regex_converter"]

        self.explain_line_size = self._getint(conf, "ingest", "explain_line_size", 3)
        self.svclog_line_size = self._getint(conf, "ingest", "svclog_line_size", 3)
        self.follow_interval = self._getfloat(conf, "ingest", "follow_interval")
        self.bookmark_path = conf["ingest"]["bookmark_path"]

        self.servicelog_url = conf["servicelog"]["url"]

        self.vpd_provider = conf["vpd"]["provider"]
        self.devtree_root = conf["vpd"]["devtree_root"]

    @staticmethod
    def _getint(conf, section, option, minimum):
        try:
            value = conf.getint(section, option)
        except ValueError:
            raise ConfigError("invalid {0}.{1}: {2}".format(
                section, option, conf[section][option]))
        if value < minimum:
            raise ConfigError("{0}.{1} must be at least {2}".format(
                section, option, minimum))
        return value

    @staticmethod
    def _getfloat(conf, section, option):
        try:
            value = conf.getfloat(section, option)
        except ValueError:
            raise ConfigError("invalid {0}.{1}: {2}".format(
                section, option, conf[section][option]))
        if value < 0:
            raise ConfigError("{0}.{1} must not be negative".format(
                section, option))
        return value


def default_conf():
    conf = configparser.ConfigParser()
    conf.read_dict(DEFAULTS)
    return conf


def load_config(path=None):
    """Load a configuration file.

    If path is not given, :data:`DEFAULT_CONFIG_PATH` is used
    if it exists, otherwise the defaults.

    Args:
        path (str, optional): configuration file.

    Returns:
        :class:`Config`

    Raises:
        ConfigError: if the given file cannot be read or is invalid.
    """
    conf = default_conf()
    if path is None:
        if not os.path.exists(DEFAULT_CONFIG_PATH):
            return Config(conf)
        path = DEFAULT_CONFIG_PATH
    try:
        with open(path) as f:
            conf.read_file(f)
    except (OSError, configparser.Error) as e:
        raise ConfigError("cannot load config {0}: {1}".format(path, e))
    _logger.debug("config loaded: %s", path)
    return Config(conf)
