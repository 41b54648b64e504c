import importlib
import os
import tempfile
import unittest

import syslogela
from syslogela._common import CatalogError

import catalog_data

load = importlib.import_module("syslogela.load")


class TestLoad(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.catalog_dir = catalog_data.write_catalog(
            os.path.join(self._tmp.name, "catalog"))

    def tearDown(self):
        self._tmp.cleanup()

    def test_load(self):
        catalog = syslogela.load(self.catalog_dir)
        assert catalog.errors == 0
        assert len(catalog.exceptions) == 1
        assert [d.name for d in catalog.events.drivers] == \
            ["generic", "mydrv", "userd"]
        assert len(catalog.events) == 7
        assert catalog.events.events[0].is_exception
        for event in catalog.events:
            for variant in event.match_variants:
                assert variant.regex is not None

    def test_load_twice(self):
        first = syslogela.load(self.catalog_dir)
        second = syslogela.load(self.catalog_dir)
        assert first.dump() == second.dump()

    def test_catalog_files(self):
        os.makedirs(os.path.join(self.catalog_dir, load.REGEX_SUBDIR))
        names = [os.path.basename(p)
                 for p in load.catalog_files(self.catalog_dir)]
        assert names == ["generic", "mydrv", "userd"]

    def test_write_then_read(self):
        computed = syslogela.load(self.catalog_dir)
        written = syslogela.load(self.catalog_dir, policy=syslogela.REGEX_WRITE)
        assert written.errors == 0

        copy_path = os.path.join(self.catalog_dir, load.REGEX_SUBDIR, "mydrv")
        with open(copy_path) as f:
            text = f.read()
        assert 'regex dev_err "^' in text
        # one statement per variant of the meta reporter
        assert 'regex printk_err "^' in text

        read = syslogela.load(self.catalog_dir, policy=syslogela.REGEX_READ)
        assert read.errors == 0
        l_computed = [v.regex_text for ev in computed.events
                      for v in ev.match_variants]
        l_read = [v.regex_text for ev in read.events
                  for v in ev.match_variants]
        assert l_read == l_computed

    def test_write_idempotent(self):
        syslogela.load(self.catalog_dir, policy=syslogela.REGEX_WRITE)
        copy_path = os.path.join(self.catalog_dir, load.REGEX_SUBDIR, "userd")
        with open(copy_path) as f:
            first = f.read()
        syslogela.load(self.catalog_dir, policy=syslogela.REGEX_WRITE)
        with open(copy_path) as f:
            second = f.read()
        assert first == second

    def test_write_annotated(self):
        syslogela.load(self.catalog_dir, policy=syslogela.REGEX_WRITE)
        with open(os.path.join(self.catalog_dir, load.REGEX_SUBDIR, "mydrv")) as f:
            annotated = f.read()
        catalog_data.write_catalog(self.catalog_dir, files={"mydrv": annotated})
        catalog = syslogela.load(self.catalog_dir, policy=syslogela.REGEX_WRITE)
        # reported once per file
        assert catalog.errors == 1

    def test_read_without_regex_dir(self):
        with self.assertRaises(CatalogError):
            syslogela.load(self.catalog_dir, policy=syslogela.REGEX_READ)

    def test_missing(self):
        with self.assertRaises(CatalogError):
            syslogela.load(os.path.join(self._tmp.name, "nosuch"))

        other_dir = catalog_data.write_catalog(
            os.path.join(self._tmp.name, "other"), files={"exceptions": None})
        with self.assertRaises(CatalogError):
            syslogela.load(other_dir)

    def test_errors(self):
        bad = ("subsystem: net\n"
               'message: nosuch_err "a\\n"\n'
               "description {{ a }} action {{ a }} class: software type: perm\n")
        catalog_data.write_catalog(self.catalog_dir, files={"bad": bad})
        catalog = syslogela.load(self.catalog_dir)
        assert catalog.errors == 1
        # the other files are still loaded
        assert len(catalog.events) == 8

        with self.assertRaises(CatalogError):
            syslogela.load(self.catalog_dir, strict=True)

    def test_reporters_error(self):
        reporters = catalog_data.REPORTERS + "reporter: dev_err(err)\n"
        catalog_data.write_catalog(self.catalog_dir,
                                   files={"reporters": reporters})
        catalog = syslogela.load(self.catalog_dir)
        assert catalog.errors == 1
        assert len(catalog.events) == 0

    def test_invalid_policy(self):
        with self.assertRaises(ValueError):
            syslogela.load(self.catalog_dir, policy="guess")

    def test_dump(self):
        catalog = syslogela.load(self.catalog_dir)
        text = catalog.dump()
        assert "-----\nreporter: dev_printk(unknown)\n" in text
        assert "-----\nmeta_reporter: drv_err\n" in text
        assert 'message: dev_err "link down\\n"\n' in text
        assert "exception: unknown_dev_err\n" in text


if __name__ == "__main__":
    unittest.main()
