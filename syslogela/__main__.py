#!/usr/bin/env python

import importlib
import logging
import os
import sys

import click

from . import catalog as ctlg
from . import date
from . import ingest
from . import regex
from . import servicelog
from . import vpd
from ._common import CatalogError, ConfigError, ServiceLogError
from .config import load_config

# The package re-exports the load() function under the same name, so
# fetch the submodule itself.
load = importlib.import_module(".load", __package__)

_logger = logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_CATALOG = 2
EXIT_STORE = 3

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _fail(msg, code=EXIT_USAGE):
    click.echo("{0}: {1}".format(click.get_current_context().info_name, msg),
               err=True)
    sys.exit(code)


def _init_logging(debug):
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING,
                        format="%(name)s: %(levelname)s: %(message)s",
                        stream=sys.stderr)


def _get_config(path):
    try:
        return load_config(path)
    except ConfigError as e:
        _fail(e)


def _parse_date_arg(value, opt_name):
    if value is None:
        return None
    dt = date.parse_flexible(value)
    if dt is None:
        _fail("unrecognized date format for {0} option".format(opt_name))
    return dt


def _check_dates(begin, end):
    if begin is not None and end is not None and begin > end:
        _fail("end date = {0} precedes begin date = {1}".format(end, begin))


def _messages_path(conf, messages, syslog):
    if messages and syslog:
        _fail("cannot specify both -m and -M")
    if syslog:
        return conf.messages_path
    return messages


def _check_input(path):
    if path is None:
        return
    try:
        with open(path, "r"):
            pass
    except OSError as e:
        _fail(e, EXIT_CATALOG)


def _load_catalog(conf, catalog_dir, policy=None):
    if catalog_dir is None:
        catalog_dir = conf.catalog_dir
    if policy is None:
        policy = conf.regex_policy
    compiler = regex.init_compiler(conf.format_compiler, conf.regex_converter)
    try:
        catalog = load.load(catalog_dir, policy=policy, compiler=compiler)
    except CatalogError as e:
        _fail(e, EXIT_CATALOG)
    if catalog.errors > 0:
        _fail("{0} errors in message catalog {1}".format(
            catalog.errors, catalog_dir), EXIT_CATALOG)
    return catalog


_date_options = [
    click.option("--begin", "-b", default=None, metavar="DATE",
                 help="ignore messages with timestamps prior to DATE"),
    click.option("--end", "-e", default=None, metavar="DATE",
                 help="ignore messages with timestamps at or after DATE"),
]

_input_options = [
    click.option("--messages", "-m", default=None, metavar="FILE",
                 help="read syslog messages from FILE, not stdin"),
    click.option("--syslog", "-M", is_flag=True,
                 help="read syslog messages from the system message file"),
    click.option("--catalog-dir", "-C", default=None, metavar="DIR",
                 help="use message catalog in DIR"),
    click.option("--debug", "-d", is_flag=True,
                 help="print debugging output on stderr"),
    click.option("--config", "config_path", default=None, metavar="FILE",
                 help="configuration file"),
]


def _add_options(options):
    def _decorator(func):
        for option in reversed(options):
            func = option(func)
        return func
    return _decorator


@click.command("explain", context_settings=CONTEXT_SETTINGS)
@_add_options(_date_options)
@_add_options(_input_options)
@click.option("--all", "all_matches", is_flag=True,
              help="report every matching catalog entry of a message")
def explain(begin, end, messages, syslog, catalog_dir, debug, config_path,
            all_matches):
    """Explain the syslog messages recognized by the message catalog."""
    _init_logging(debug)
    conf = _get_config(config_path)
    dt_begin = _parse_date_arg(begin, "-b")
    dt_end = _parse_date_arg(end, "-e")
    _check_dates(dt_begin, dt_end)
    path = _messages_path(conf, messages, syslog)
    _check_input(path)

    catalog = _load_catalog(conf, catalog_dir)
    if debug:
        click.echo(catalog.dump(), nl=False)

    reader = ingest.LineReader(path=path, size=conf.explain_line_size)
    explainer = ingest.Explainer(catalog, out=click.get_text_stream("stdout"),
                                 begin=dt_begin, end=dt_end,
                                 all_matches=all_matches)
    explainer.run(reader)


@click.command("svclog", context_settings=CONTEXT_SETTINGS)
@_add_options(_date_options)
@click.option("--follow", "-F", is_flag=True,
              help="don't stop at EOF; process newly logged messages")
@_add_options(_input_options)
@click.option("--bookmark", "bookmark_path", default=None, metavar="FILE",
              help="resume after the message recorded in FILE")
@click.option("--db", "db_url", default=None, metavar="URL",
              help="servicelog database URL")
def svclog(begin, end, follow, messages, syslog, catalog_dir, debug,
           config_path, bookmark_path, db_url):
    """Log the syslog messages recognized by the message catalog
    as servicelog events."""
    _init_logging(debug)
    conf = _get_config(config_path)
    dt_begin = _parse_date_arg(begin, "-b")
    dt_end = _parse_date_arg(end, "-e")
    path = _messages_path(conf, messages, syslog)
    if follow and path is None:
        _fail("cannot specify -F when messages come from stdin")
    if dt_end is not None and follow:
        _fail("cannot specify both -e and -F")
    _check_dates(dt_begin, dt_end)
    # follow by default for the system message file
    if syslog and dt_end is None:
        follow = True

    bookmark = None
    bookmark_line = None
    if syslog or bookmark_path:
        bookmark = ingest.Bookmark(bookmark_path or conf.bookmark_path,
                                   size=conf.svclog_line_size)
        if dt_begin is None:
            try:
                bookmark_line = bookmark.load()
            except ConfigError as e:
                _fail(e, EXIT_STORE)
    _check_input(path)

    catalog = _load_catalog(conf, catalog_dir)

    if debug:
        store = servicelog.PrintServiceLog(stream=click.get_text_stream("stdout"))
    else:
        store = servicelog.SqlServiceLog(db_url or conf.servicelog_url)
    try:
        store.open()
    except ServiceLogError as e:
        _fail(e, EXIT_STORE)

    try:
        reader = ingest.LineReader(path=path, size=conf.svclog_line_size,
                                   follow=follow,
                                   interval=conf.follow_interval)
        logger = ingest.SvcLogger(catalog, store, bookmark=bookmark,
                                  vpd=vpd.init_vpd(conf.vpd_provider),
                                  devtree_root=conf.devtree_root,
                                  begin=dt_begin, end=dt_end,
                                  bookmark_line=bookmark_line)
        stats = logger.run(reader)
        _logger.info("%s", stats)
    except KeyboardInterrupt:
        pass
    finally:
        store.close()


@click.command("add-regex", context_settings=CONTEXT_SETTINGS)
@click.option("--catalog-dir", "-C", default=None, metavar="DIR",
              help="use message catalog in DIR")
@click.option("--debug", "-d", is_flag=True,
              help="print debugging output on stderr")
@click.option("--config", "config_path", default=None, metavar="FILE",
              help="configuration file")
def add_regex(catalog_dir, debug, config_path):
    """Write a copy of the message catalog with precomputed regular
    expressions into its with_regex subdirectory."""
    _init_logging(debug)
    conf = _get_config(config_path)
    catalog = _load_catalog(conf, catalog_dir, policy=ctlg.REGEX_WRITE)
    click.echo("{0} catalog files with regex written to {1}".format(
        len(catalog.events.drivers),
        os.path.join(catalog.directory, load.REGEX_SUBDIR)))


@click.group(context_settings=CONTEXT_SETTINGS)
def main():
    """Syslog error log analysis with a message catalog."""
    pass


main.add_command(explain)
main.add_command(svclog)
main.add_command(add_regex)


if __name__ == "__main__":
    main()
