# coding: utf-8

__version__ = '0.1.0'

from ._common import CatalogError, FormatCompileError, ConfigError, ServiceLogError
from .catalog import Catalog, REGEX_COMPUTE, REGEX_READ, REGEX_WRITE
from .classify import Classifier, Match
from .load import load
from .message import SyslogMessage
