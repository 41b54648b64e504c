# coding: utf-8

"""Callout enrichment with Vital Product Data.

The device named in a matched message is mapped to its sysfs devspec
node (see :meth:`~message.SyslogMessage.set_devspec_path`), which holds
the device's path in the device tree. The location code read from
the device tree is then looked up in the VPD to get
the FRU number, serial number and CCIN of the device.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections import namedtuple

_logger = logging.getLogger(__name__)

DEFAULT_DEVTREE_ROOT = "/proc/device-tree"
LOCATION_CODE_FILE = "ibm,loc-code"
LOCATION_CODE_MAXLEN = 1000

Callout = namedtuple("Callout", ["location", "fru", "serial", "ccin"])
EMPTY_CALLOUT = Callout("", "", "", "")

VpdRecord = namedtuple("VpdRecord", ["fru", "serial", "ccin"])


class VpdLookup(ABC):

    @abstractmethod
    def lookup(self, location):
        """Find the VPD of the component at a location code.

        Returns:
            :class:`VpdRecord`, or None if not found.
        """
        raise NotImplementedError


class NullVpd(VpdLookup):
    """No VPD available: every lookup misses."""

    def lookup(self, location):
        return None


class StaticVpd(VpdLookup):
    """VPD given as a mapping of location code to :class:`VpdRecord`
    (or (fru, serial, ccin) tuple)."""

    def __init__(self, records):
        self._records = {loc: VpdRecord(*rec) for loc, rec in records.items()}

    def lookup(self, location):
        return self._records.get(location)


def parse_lsvpd(text):
    """Parse the output of lsvpd into VPD records by location code.

    lsvpd prints one keyword per line (e.g., "*SN YL10JP123456"),
    and each component starts with a "*FC" line.
    """
    records = {}
    current = {}

    def _flush():
        loc = current.get("YL")
        if loc:
            records[loc] = VpdRecord(current.get("FN", ""),
                                     current.get("SN", ""),
                                     current.get("CC", ""))

    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("*") or len(line) < 3:
            continue
        key = line[1:3]
        value = line[3:].strip()
        if key == "FC" or key in current:
            _flush()
            current = {}
        current[key] = value
    _flush()
    return records


class LsvpdLookup(VpdLookup):
    """VPD collected by running lsvpd.

    The command is run at the first lookup only:
    either it succeeds or the lookups give up forever.

    Args:
        command (str, optional): lsvpd program name or path.
    """

    def __init__(self, command="lsvpd"):
        self._command = command
        self._records = None
        self._collected = False

    def _collect(self):
        self._collected = True
        try:
            proc = subprocess.run([self._command], stdout=subprocess.PIPE,
                                  stderr=subprocess.PIPE,
                                  universal_newlines=True, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            _logger.warning("cannot collect VPD with %s: %s", self._command, e)
            return None
        records = parse_lsvpd(proc.stdout)
        if not records:
            _logger.warning("%s returned no VPD", self._command)
            return None
        return records

    def lookup(self, location):
        if not self._collected:
            self._records = self._collect()
        if self._records is None:
            return None
        return self._records.get(location)


def init_vpd(provider="lsvpd"):
    """Generate a :class:`VpdLookup` by name ("lsvpd" or "none")."""
    if provider == "lsvpd":
        return LsvpdLookup()
    elif provider == "none":
        return NullVpd()
    else:
        raise ValueError("unknown vpd provider: {0}".format(provider))


def _read_bytes(path):
    try:
        with open(path, "rb") as f:
            return f.read(4096)
    except OSError as e:
        _logger.debug("cannot read %s: %s", path, e)
        return None


def resolve_callout(event, message, vpd, devtree_root=DEFAULT_DEVTREE_ROOT):
    """Resolve the location code and VPD of the device
    named in a matched message.

    Args:
        event (:class:`~catalog.SyslogEvent`): the matched event.
        message (:class:`~message.SyslogMessage`): the matched message,
            with its prefix args captured.
        vpd (:class:`VpdLookup`)
        devtree_root (str, optional): mount point of the device tree.

    Returns:
        :class:`Callout`; :data:`EMPTY_CALLOUT` if anything is missing.
    """
    if not message.set_devspec_path(event):
        return EMPTY_CALLOUT

    # the devspec node holds the device tree path, without newline
    data = _read_bytes(message.devspec_path)
    if not data or data.startswith(b"none"):
        return EMPTY_CALLOUT
    devtree_path = data.decode("utf-8", "replace").rstrip("\0\n")
    loc_path = os.path.join(devtree_root + devtree_path, LOCATION_CODE_FILE)

    data = _read_bytes(loc_path)
    if data is None or len(data) >= LOCATION_CODE_MAXLEN:
        return EMPTY_CALLOUT
    location = data.decode("utf-8", "replace").strip("\0\n")
    if location == "":
        return EMPTY_CALLOUT

    record = vpd.lookup(location)
    if record is None:
        return EMPTY_CALLOUT
    return Callout(location, record.fru, record.serial, record.ccin)
