# coding: utf-8

import logging
import os

from . import catalog as ctlg
from . import grammar
from ._common import CatalogError, Diagnostics

_logger = logging.getLogger(__name__)

REPORTERS_FILE = "reporters"
EXCEPTIONS_FILE = "exceptions"
REGEX_SUBDIR = "with_regex"


class CatalogCopy:
    """Writer of a copy of a catalog file, with extra text
    (regex statements) injected after given lines.

    Args:
        rd_path (str): original catalog file.
        wr_path (str): path of the copy.
    """

    def __init__(self, rd_path, wr_path):
        self.orig_path = rd_path
        self.copy_path = wr_path
        with open(rd_path, "r") as f:
            self._lines = f.readlines()
        self._copy_file = open(wr_path, "w")
        self._last_line_copied = 0
        self.valid = True

    def _copy_through(self, line_nr):
        if line_nr < 0:
            line_nr = len(self._lines)
        while self._last_line_copied < min(line_nr, len(self._lines)):
            self._copy_file.write(self._lines[self._last_line_copied])
            self._last_line_copied += 1
        return self._last_line_copied == line_nr

    def inject_text(self, text, line_nr):
        """Copy through line line_nr of the original, then append text."""
        if not self.valid:
            return
        if not self._copy_through(line_nr):
            _logger.error("%s truncated at line %d",
                          self.orig_path, self._last_line_copied)
            self.valid = False
        self._copy_file.write(text)

    def finish_copy(self):
        if self.valid:
            self._copy_through(-1)

    def close(self):
        self._copy_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.finish_copy()
        self.close()


def _read_text(path, diag):
    try:
        with open(path, "r") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        diag.error("can't open catalog file: {0}".format(e))
        return None


def _load_reporters(catalog, path, policy, compiler):
    diag = Diagnostics(path)
    catalog.diagnostics.append(diag)
    text = _read_text(path, diag)
    if text is not None:
        ctx = ctlg.LoadContext(catalog, diag, policy, compiler)
        grammar.parse_reporters(text, ctx)
    return diag.count


def _load_events(catalog, path, policy, compiler, copy=None, register=True):
    diag = Diagnostics(path)
    catalog.diagnostics.append(diag)
    text = _read_text(path, diag)
    if text is None:
        return diag.count
    driver = ctlg.EventCtlgFile(path)
    ctx = ctlg.LoadContext(catalog, diag, policy, compiler, copy)
    grammar.parse_events(text, ctx, driver)
    if register:
        catalog.events.register_driver(driver)
    _logger.debug("%s: %d events, %d errors",
                  path, len(driver.events), diag.count)
    return diag.count


def catalog_files(directory):
    """List driver catalog files in directory, in name order.

    The reporters and exceptions files, and anything that
    is not a regular file, are excluded.
    """
    l_path = []
    for name in sorted(os.listdir(directory)):
        if name in (REPORTERS_FILE, EXCEPTIONS_FILE):
            continue
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            l_path.append(path)
    return l_path


def load(directory, policy=ctlg.REGEX_COMPUTE, compiler=None, strict=False):
    """Load the message catalog in directory.

    The reporters file is read first, then the exceptions file,
    and then all other files of the directory as driver catalogs.
    With :data:`~catalog.REGEX_READ` policy, driver catalogs are read
    from the with_regex subdirectory, which
    :data:`~catalog.REGEX_WRITE` policy populates.

    Semantic errors are logged and counted in
    :attr:`Catalog.errors <catalog.Catalog.errors>`;
    errors in the reporters or exceptions file stop the load there.

    Args:
        directory (str): catalog directory.
        policy (str, optional): one of :data:`~catalog.REGEX_POLICIES`.
        compiler (:class:`~regex.FormatCompiler`, optional):
            format converter, defaults to the built-in one.
        strict (bool, optional): raise :class:`CatalogError`
            if any semantic error is found.

    Returns:
        :class:`~catalog.Catalog`

    Raises:
        CatalogError: if directory or one of the mandatory files
            does not exist, or on errors in strict mode.
    """
    if policy not in ctlg.REGEX_POLICIES:
        raise ValueError("invalid regex policy: {0}".format(policy))
    if not os.path.isdir(directory):
        raise CatalogError("catalog directory not found: {0}".format(directory))
    for name in (REPORTERS_FILE, EXCEPTIONS_FILE):
        if not os.path.isfile(os.path.join(directory, name)):
            raise CatalogError("can't open catalog file: {0}".format(
                os.path.join(directory, name)))

    catalog = ctlg.Catalog(directory)
    if _load_reporters(catalog, os.path.join(directory, REPORTERS_FILE),
                       policy, compiler) == 0:
        if _load_events(catalog, os.path.join(directory, EXCEPTIONS_FILE),
                        policy, compiler, register=False) == 0:
            _load_drivers(catalog, directory, policy, compiler)

    _logger.info("catalog %s: %d reporters, %d events, %d errors",
                 directory, len(catalog.reporters), len(catalog.events),
                 catalog.errors)
    if strict and catalog.errors > 0:
        raise CatalogError("{0} errors in catalog {1}".format(
            catalog.errors, directory))
    return catalog


def _load_drivers(catalog, directory, policy, compiler):
    dir_w_regex = os.path.join(directory, REGEX_SUBDIR)
    if policy == ctlg.REGEX_READ:
        if not os.path.isdir(dir_w_regex):
            raise CatalogError("catalog directory not found: {0}".format(
                dir_w_regex))
        event_dir = dir_w_regex
    else:
        event_dir = directory
    if policy == ctlg.REGEX_WRITE:
        os.makedirs(dir_w_regex, exist_ok=True)

    for path in catalog_files(event_dir):
        if policy == ctlg.REGEX_WRITE:
            copy_path = os.path.join(dir_w_regex, os.path.basename(path))
            with CatalogCopy(path, copy_path) as copy:
                _load_events(catalog, path, policy, compiler, copy=copy)
        else:
            _load_events(catalog, path, policy, compiler)
