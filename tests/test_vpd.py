import os
import tempfile
import unittest

import syslogela
from syslogela import vpd

import catalog_data

LSVPD_OUTPUT = """\
*VC 5.0
*TM IBM,8231-E2B
*FC ????????
*DS PCI-E Ethernet adapter
*YL U78A9.001.1234567-P1-C5
*FN 10N9824
*SN YL10JP123456
*CC 5767
*FC ????????
*DS SAS disk
*YL U78A9.001.1234567-P2-D1
*FN 74Y6486
*SN 6XN1A2B3
*CC 19B1
*YL U78A9.001.1234567-P2-D2
*SN 6XN1A2B4
"""

LOCATION = "U78A9.001.1234567-P1-C5"
DEVTREE_PATH = "/pci@800000020000203/ethernet@0"


class TestVpd(unittest.TestCase):

    def test_parse_lsvpd(self):
        records = vpd.parse_lsvpd(LSVPD_OUTPUT)
        assert records[LOCATION] == vpd.VpdRecord("10N9824", "YL10JP123456", "5767")
        assert records["U78A9.001.1234567-P2-D1"].ccin == "19B1"
        # a repeated keyword starts a new record
        assert records["U78A9.001.1234567-P2-D2"] == \
            vpd.VpdRecord("", "6XN1A2B4", "")

    def test_static(self):
        lookup = vpd.StaticVpd({LOCATION: ("10N9824", "YL10JP123456", "5767")})
        assert lookup.lookup(LOCATION).fru == "10N9824"
        assert lookup.lookup("U0") is None
        assert vpd.NullVpd().lookup(LOCATION) is None

    def test_lsvpd_missing(self):
        lookup = vpd.LsvpdLookup("/nonexistent/lsvpd")
        assert lookup.lookup(LOCATION) is None
        # the command is not run again
        assert lookup.lookup(LOCATION) is None

    def test_init_vpd(self):
        assert isinstance(vpd.init_vpd("lsvpd"), vpd.LsvpdLookup)
        assert isinstance(vpd.init_vpd("none"), vpd.NullVpd)
        with self.assertRaises(ValueError):
            vpd.init_vpd("other")


class TestResolveCallout(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = self._tmp.name
        self.sysfs = os.path.join(root, "sys")
        self.devtree = os.path.join(root, "device-tree")
        catalog_dir = catalog_data.write_catalog(
            os.path.join(root, "catalog"), sysfs_root=self.sysfs)
        self.classifier = syslogela.Classifier(
            syslogela.load(catalog_dir, strict=True))
        self.vpd = vpd.StaticVpd({LOCATION: ("10N9824", "YL10JP123456", "5767")})

        devdir = os.path.join(self.sysfs, "bus", "pci", "devices", "0000:01:00.0")
        os.makedirs(devdir)
        with open(os.path.join(devdir, "devspec"), "w") as f:
            f.write(DEVTREE_PATH + "\n")
        nodedir = self.devtree + DEVTREE_PATH
        os.makedirs(nodedir)
        with open(os.path.join(nodedir, vpd.LOCATION_CODE_FILE), "wb") as f:
            f.write(LOCATION.encode() + b"\0")

    def tearDown(self):
        self._tmp.cleanup()

    def _resolve(self, line):
        msg = syslogela.SyslogMessage(line, now=catalog_data.NOW)
        match = self.classifier.classify(msg)
        return vpd.resolve_callout(match.event, msg, self.vpd, self.devtree), msg

    def test_resolve(self):
        callout, msg = self._resolve(catalog_data.LINK_DOWN)
        assert msg.devspec_path == os.path.join(
            self.sysfs, "bus/pci/devices/0000:01:00.0/devspec")
        assert callout == vpd.Callout(LOCATION, "10N9824", "YL10JP123456", "5767")

    def test_no_device(self):
        # no devspec node for this device
        line = catalog_data.LINK_DOWN.replace("0000:01:00.0", "0000:09:00.0")
        callout, msg = self._resolve(line)
        assert callout == vpd.EMPTY_CALLOUT

    def test_no_prefix_args(self):
        callout, msg = self._resolve(catalog_data.FW_OLD)
        assert callout == vpd.EMPTY_CALLOUT
        assert msg.devspec_path == ""

    def test_unknown_location(self):
        self.vpd = vpd.StaticVpd({})
        callout, msg = self._resolve(catalog_data.LINK_DOWN)
        assert callout == vpd.EMPTY_CALLOUT


if __name__ == "__main__":
    unittest.main()
