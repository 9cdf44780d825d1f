import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, patch

from configobj import ConfigObj, ConfigObjError
from hamcrest import assert_that, calling, equal_to, has_property, is_, is_not, raises
from validate import VdtTypeError

from goprobridge.config.config import BridgeSettings, apply_conf_path, config_directory, config_filename, \
    config_flavor, fetch_conf_path, is_hex_integer, load_config, load_config_file_base, map_os_name

schema = os.path.join(config_directory, 'goprobridge.schema.cfg')


class ConfigFilesTestCase(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.home = tempfile.mkdtemp()
        shutil.copy(schema, self.directory)

    def tearDown(self):
        shutil.rmtree(self.directory)
        shutil.rmtree(self.home)

    def write(self, directory, name, text):
        with open(os.path.join(directory, name), 'w') as f:
            f.write(text)

    def load(self):
        return BridgeSettings.load(self.directory, user_directory=self.home)

    def test_defaults_from_schema(self):
        settings = self.load()
        assert_that(settings.vendor_id, is_(0x2672))
        assert_that(settings.service_type, is_('gopro-web'))
        assert_that(settings.timeout, is_(10.0))
        assert_that(settings.name_marker, is_(''))
        assert_that(settings.on_timeout, is_('none'))
        assert_that(settings.fallback_address, is_('172.28.183.51'))
        assert_that(settings.strict_address, is_(False))
        assert_that(settings.tether_patterns, is_(['usb', 'rndis', 'ncm', 'eth']))
        assert_that(settings.poll_period, is_(1.0))

    def test_default_flavor(self):
        self.write(self.directory, 'goprobridge.default.cfg', "[discovery]\ntimeout = 3\n")
        assert_that(self.load().timeout, is_(3.0))

    @patch('goprobridge.config.config.os_name', return_value='osx')
    def test_platform_overrides_default(self, os_name):
        self.write(self.directory, 'goprobridge.default.cfg', "[discovery]\non_timeout = none\n")
        self.write(self.directory, 'goprobridge.osx.cfg', "[discovery]\non_timeout = fallback\n")
        assert_that(self.load().on_timeout, is_('fallback'))

    def test_user_overrides_platform(self):
        self.write(self.directory, 'goprobridge.default.cfg', "[discovery]\ntimeout = 3\n")
        self.write(self.home, 'goprobridge.cfg', "[discovery]\ntimeout = 4\n")
        assert_that(self.load().timeout, is_(4.0))

    def test_local_overrides_user(self):
        self.write(self.home, 'goprobridge.cfg', "[discovery]\ntimeout = 4\n")
        self.write(self.directory, 'goprobridge.cfg', "[discovery]\ntimeout = 5\n")
        assert_that(self.load().timeout, is_(5.0))

    def test_hex_vendor_id(self):
        self.write(self.directory, 'goprobridge.cfg', "[usb]\nvendor_id = 0x046d\n")
        assert_that(self.load().vendor_id, is_(0x046d))

    def test_decimal_vendor_id(self):
        self.write(self.directory, 'goprobridge.cfg', "[usb]\nvendor_id = 9842\n")
        assert_that(self.load().vendor_id, is_(0x2672))

    def test_empty_name_marker(self):
        self.write(self.directory, 'goprobridge.cfg', "[discovery]\nname_marker = ''\n")
        assert_that(self.load().name_marker, is_(''))

    def test_invalid_option(self):
        self.write(self.directory, 'goprobridge.cfg', "[discovery]\non_timeout = sometimes\n")
        assert_that(calling(self.load), raises(ConfigObjError, "failed validation discovery/on_timeout"))

    def test_invalid_vendor_id(self):
        self.write(self.directory, 'goprobridge.cfg', "[usb]\nvendor_id = camera\n")
        assert_that(calling(self.load), raises(ConfigObjError, "usb/vendor_id"))

    def test_invalid_syntax(self):
        self.write(self.directory, 'broken.cfg', "[[[section\n")
        assert_that(calling(load_config_file_base).with_args(os.path.join(self.directory, 'broken.cfg')),
                    raises(ConfigObjError, "at .*broken.cfg"))

    def test_load_config_returns_sections(self):
        config = load_config('goprobridge', self.directory, self.home)
        assert_that(config['network']['cellular_patterns'], is_(['rmnet', 'ccmni', 'wwan', 'pdp', 'cellular']))


class PackagedConfigTestCase(unittest.TestCase):

    @patch('goprobridge.config.config.os_name', return_value='linux')
    def test_packaged_configuration_is_valid(self, os_name):
        home = tempfile.mkdtemp()
        try:
            settings = BridgeSettings.load(user_directory=home)
        finally:
            shutil.rmtree(home)
        assert_that(settings.on_timeout, is_('none'))
        assert_that(settings.timeout, is_(10.0))
        assert_that(settings.name_marker, is_(''))

    @patch('goprobridge.config.config.os_name', return_value='osx')
    def test_packaged_osx_falls_back(self, os_name):
        home = tempfile.mkdtemp()
        try:
            settings = BridgeSettings.load(user_directory=home)
        finally:
            shutil.rmtree(home)
        assert_that(settings.on_timeout, is_('fallback'))
        assert_that(settings.name_marker, is_('gopro'))


class ConfigFunctionsTestCase(unittest.TestCase):

    def test_config_file_not_found(self):
        assert_that(calling(load_config_file_base).with_args('blah'), raises(IOError))

    def test_config_filename(self):
        name = config_flavor('goprobridge', 'default')
        assert_that(os.path.exists(config_filename(name, config_directory)), is_(True))

    def test_map_os_name(self):
        assert_that(map_os_name('Windows'), is_('windows'))
        assert_that(map_os_name('Darwin'), is_('osx'))
        assert_that(map_os_name('Linux'), is_('linux'))

    def test_hex_integer(self):
        assert_that(is_hex_integer('0x2672'), is_(9842))
        assert_that(is_hex_integer('12'), is_(12))
        assert_that(is_hex_integer(12), is_(12))

    def test_hex_integer_out_of_range(self):
        assert_that(calling(is_hex_integer).with_args('0x10000', '0', '65535'), raises(VdtTypeError))

    def test_non_existent_config_path(self):
        assert_that(fetch_conf_path(ConfigObj(), ['abcd']), is_(None))

    def test_apply_conf_path(self):
        conf = ConfigObj({'discovery': {'timeout': 2.5, 'unknown': 1}})
        target = BridgeSettings()
        apply_conf_path(conf, ['discovery'], target)
        assert_that(target.timeout, is_(equal_to(2.5)))
        assert_that(target, is_not(has_property('unknown')))

    def test_apply_missing_path(self):
        target = Mock(spec=[])
        apply_conf_path(ConfigObj(), ['abcd'], target)
