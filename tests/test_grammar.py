import unittest

from syslogela import _common
from syslogela import catalog
from syslogela import grammar

import catalog_data


def _context(path="test"):
    ctlg = catalog.Catalog()
    diag = _common.Diagnostics(path)
    ctlg.diagnostics.append(diag)
    return catalog.LoadContext(ctlg, diag)


def _reporters_context():
    ctx = _context("reporters")
    grammar.parse_reporters(catalog_data.REPORTERS, ctx)
    assert ctx.diag.count == 0
    exc_ctx = catalog.LoadContext(ctx.catalog, _common.Diagnostics("exceptions"))
    grammar.parse_events(catalog_data.EXCEPTIONS, exc_ctx,
                         catalog.EventCtlgFile("exceptions"))
    assert exc_ctx.diag.count == 0
    return ctx.catalog


class TestScanner(unittest.TestCase):

    def _tokens(self, text):
        diag = _common.Diagnostics("test")
        return grammar.Scanner(text, diag).tokens(), diag

    def test_tokens(self):
        tokens, diag = self._tokens('message: dev_err "a\\tb\\101\\n" {{ text\n}}')
        kinds = [tok.kind for tok in tokens]
        assert kinds == [grammar.NAME, grammar.PUNCT, grammar.NAME,
                         grammar.STRING, grammar.TEXT, grammar.EOF]
        assert tokens[3].value == "a\tbA\n"
        assert tokens[4].value == "text"
        assert tokens[4].lineno == 1
        assert tokens[4].end_lineno == 2
        assert diag.count == 0

    def test_escaped_newline(self):
        tokens, diag = self._tokens('"abc\\\ndef"')
        assert tokens[0].value == "abcdef"
        assert tokens[0].end_lineno == 2

    def test_comment(self):
        tokens, diag = self._tokens("/* one\n/* two */ name")
        assert [tok.value for tok in tokens] == ["name", ""]
        assert tokens[0].lineno == 2
        assert len(diag.warnings) == 1
        assert "starting at line 1" in diag.warnings[0][1]

    def test_unterminated(self):
        tokens, diag = self._tokens('message "abc')
        assert tokens[-1].kind == grammar.EOF
        assert diag.count == 1

        tokens, diag = self._tokens("/* abc")
        assert diag.count == 1

    def test_unexpected_character(self):
        tokens, diag = self._tokens("a $ b")
        assert [tok.value for tok in tokens] == ["a", "b", ""]
        assert diag.count == 1


class TestReporterParser(unittest.TestCase):

    def test_reporters(self):
        ctx = _context()
        nerr = grammar.parse_reporters(catalog_data.REPORTERS, ctx)
        assert nerr == 0
        assert ctx.diag.count == 0

        reporters = ctx.catalog.reporters
        alias = reporters.find("dev_err")
        assert alias.severity == _common.LOG_ERR
        reporter = alias.reporter
        assert reporter.name == "dev_printk"
        assert reporter.from_kernel
        assert reporter.prefix_format == "%s %s: "
        assert reporter.prefix_args == ["driver", "device"]
        assert reporter.device_arg == "device"

        printk = reporters.find("printk").reporter
        assert printk.device_arg == "none"
        assert not printk.has_prefix_args
        assert not reporters.find("syslog_err").reporter.from_kernel

        meta = reporters.find_meta_reporter("drv_err")
        assert [a.name for a in meta.variants] == ["dev_err", "printk_err"]
        assert meta.from_kernel

    def test_duplicates(self):
        text = ("reporter: a(err)\nsource: kernel\n"
                "reporter: b(err)\nsource: kernel\naliases: a\n"
                "meta_reporter: m\nvariants: a a\n")
        ctx = _context()
        grammar.parse_reporters(text, ctx)
        # duplicate reporter name, duplicate variant name
        assert ctx.diag.count == 2

    def test_mixed_origins(self):
        text = ("reporter: k(err)\nsource: kernel\n"
                "reporter: u(err)\nsource: user\n"
                "meta_reporter: m\nvariants: k u\n")
        ctx = _context()
        grammar.parse_reporters(text, ctx)
        assert ctx.diag.count == 1

    def test_device_arg(self):
        text = ('reporter: r(err)\nsource: kernel\n'
                'prefix_format: "%s: "\nprefix_args: unit\n')
        ctx = _context()
        grammar.parse_reporters(text, ctx)
        # no "device" arg and no device_arg statement
        assert ctx.diag.count == 1

    def test_syntax_error_recovery(self):
        text = ("reporter: a(err) source: kernel\n"
                "reporter: b(err) source \"kernel\"\n"
                "reporter: c(err) source: kernel\n")
        ctx = _context()
        nerr = grammar.parse_reporters(text, ctx)
        assert nerr == 1
        assert ctx.catalog.reporters.find("a") is not None
        assert ctx.catalog.reporters.find("b") is None
        assert ctx.catalog.reporters.find("c") is not None


class TestEventParser(unittest.TestCase):

    def _parse(self, text, path="drv"):
        ctlg = _reporters_context()
        diag = _common.Diagnostics(path)
        ctlg.diagnostics.append(diag)
        ctx = catalog.LoadContext(ctlg, diag)
        driver = catalog.EventCtlgFile(path)
        nerr = grammar.parse_events(text, ctx, driver)
        return ctlg, driver, nerr

    def test_driver(self):
        ctlg, driver, nerr = self._parse(
            catalog_data.MYDRV.replace("@SYSFS@", "/sys"))
        assert nerr == 0
        assert ctlg.errors == 0
        assert driver.subsystem == "net"
        assert driver.source_files == ["drivers/net/mydrv.c",
                                       "drivers/net/mydrv_fw.c"]
        assert len(driver.events) == 5

        link_down = driver.events[0]
        assert link_down.action == "Check the cable and the switch port."
        assert link_down.err_class == _common.SYCL_HARDWARE
        assert link_down.sl_severity == _common.SL_SEV_ERROR_LOCAL
        assert link_down.refcode == "#MYDRV01"
        assert link_down.source_file == "drivers/net/mydrv.c"

        queue = driver.events[2]
        assert len(queue.match_variants) == 2
        assert queue.priority == "M"
        assert queue.err_type == _common.SYTY_TEMP

        fw_old = driver.events[3]
        assert fw_old.source_file == "drivers/net/mydrv_fw.c"
        assert fw_old.get_severity() == _common.LOG_WARNING
        # "default" severity of printk
        assert driver.events[4].get_severity() == _common.LOG_WARNING

        macro = driver.find_devspec("device")
        assert macro.get_devspec_path("0000:01:00.0") == \
            "/sys/bus/pci/devices/0000:01:00.0/devspec"

    def test_exception(self):
        ctlg, driver, nerr = self._parse(catalog_data.GENERIC)
        assert ctlg.errors == 0
        event = driver.events[0]
        assert event.is_exception
        description, action = event.explanation
        assert description.startswith("A device reported an error")

    def test_unknown_exception(self):
        ctlg, driver, nerr = self._parse(
            'subsystem: misc\nmessage[nosuch]: dev_err "%s\\n"\n')
        errors = [msg for _, msg in ctlg.diagnostics[-1].errors]
        assert "unknown exception type: nosuch" in errors

    def test_severity_conflict(self):
        text = ("subsystem: net\n"
                'message: dev_err err "a\\n"\n'
                "description {{ a }} action {{ a }} class: software type: perm\n"
                'message: dev_err warning "b\\n"\n'
                "description {{ b }} action {{ b }} class: software type: perm\n"
                'message: printk "c\\n"\n'
                "description {{ c }} action {{ c }} class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert nerr == 0
        d_err = {}
        for lineno, msg in ctlg.diagnostics[-1].errors:
            d_err.setdefault(lineno, []).append(msg)
        # given twice; given twice and conflicting; given nowhere
        assert len(d_err[2]) == 1
        assert len(d_err[4]) == 2
        assert len(d_err[6]) == 1

    def test_missing_fields(self):
        text = ("subsystem: net\n"
                'message: dev_err "a\\n"\n'
                "description {{ a }}\n"
                "class: software type: perm sl_severity: error\n")
        ctlg, driver, nerr = self._parse(text)
        # action is missing, type and sl_severity both given
        assert ctlg.errors == 2

    def test_duplicate_field(self):
        text = ("subsystem: net\n"
                'message: dev_err "a\\n"\n'
                "description {{ a }} description {{ b }}\n"
                "action {{ a }} class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert ctlg.errors == 1

    def test_missing_subsystem(self):
        text = ('message: dev_err "a\\n"\n'
                "description {{ a }} action {{ a }} class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert ctlg.errors == 1

        ctlg, driver, nerr = self._parse('file: "empty.c"\n')
        assert ctlg.errors == 0

    def test_unknown_reporter(self):
        text = ("subsystem: net\n"
                'message: nosuch_err "a\\n"\n'
                "description {{ a }} action {{ a }} class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert ctlg.errors == 1

    def test_bad_paste(self):
        text = ("subsystem: net\n"
                'message: dev_err "a\\n"\n'
                "description {{ @paste nosuch }} action {{ a }}\n"
                "class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert ctlg.errors == 1

    def test_bad_filter_and_devspec(self):
        text = ('subsystem: net\nfilter: driver != "x"\n'
                'devspec(device) = "/sys/devices/$unit/devspec"\n')
        ctlg, driver, nerr = self._parse(text)
        assert nerr == 0
        assert ctlg.errors == 2
        assert driver.find_devspec("device") is None

    def test_syntax_error_recovery(self):
        text = ("subsystem: net\n"
                'message: dev_err "a\\n"\n'
                "description {{ a }} action {{ a }} class: software type: perm\n"
                "bogus statement\n"
                'message: dev_err "b\\n"\n'
                "description {{ b }} action {{ b }} class: software type: perm\n")
        ctlg, driver, nerr = self._parse(text)
        assert nerr == 1
        assert [ev.format for ev in driver.events] == ["a\n", "b\n"]


if __name__ == "__main__":
    unittest.main()
