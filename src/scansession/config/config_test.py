import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from configobj import ConfigObjError
from hamcrest import assert_that, calling, is_, raises, has_property, is_not, none

from scansession.config.config import SessionConfig, apply_conf, config_filename, config_flavor, \
    fetch_conf_path, load_config, load_config_file_base, map_os_name, os_name, package_directory

config_name = 'config_test'

schema = """
[section]
value1 = string(default='abc')
value2 = integer(min=0, default=3)
"""


class Target:
    def __init__(self):
        self.value1 = None
        self.value2 = None


class ConfigTestCase(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.write(config_flavor(config_name, 'schema'), schema)

    def tearDown(self):
        shutil.rmtree(self.directory)

    def write(self, name, content):
        with open(config_filename(name, self.directory), 'w') as f:
            f.write(content)

    def load(self):
        return load_config(config_name, self.directory, self.directory)

    def test_config_flavor(self):
        assert_that(config_flavor('a'), is_('a'))
        assert_that(config_flavor('a', 'b'), is_('a.b'))

    def test_config_file_not_found(self):
        assert_that(calling(load_config_file_base).with_args(os.path.join(self.directory, 'blah.cfg')),
                    raises(IOError))

    def test_missing_optional_file_is_empty(self):
        conf = load_config_file_base(os.path.join(self.directory, 'blah.cfg'), must_exist=False)
        assert_that(len(conf), is_(0))

    def test_config_file_invalid_syntax(self):
        self.write('bad', '[[[section]')
        assert_that(calling(load_config_file_base).with_args(config_filename('bad', self.directory)),
                    raises(ConfigObjError, "at .*bad.cfg"))

    def test_defaults_from_schema(self):
        conf = self.load()
        assert_that(conf['section']['value1'], is_('abc'))
        assert_that(conf['section']['value2'], is_(3))

    def test_later_files_override_earlier_ones(self):
        self.write(config_flavor(config_name, 'default'), "[section]\nvalue1 = default\nvalue2 = 5\n")
        self.write(config_flavor(config_name, os_name()), "[section]\nvalue2 = 6\n")
        self.write(config_name, "[section]\nvalue1 = local\n")
        conf = self.load()
        assert_that(conf['section']['value1'], is_('local'))
        assert_that(conf['section']['value2'], is_(6))

    def test_invalid_value(self):
        self.write(config_name, "[section]\nvalue2 = -1\n")
        assert_that(calling(self.load),
                    raises(ConfigObjError, "the config file config_test failed validation section.value2"))

    def test_map_os_name(self):
        assert_that(map_os_name('Windows'), is_('windows'))
        assert_that(map_os_name('Darwin'), is_('osx'))

    def test_fetch_conf_path(self):
        self.write(config_name, "[a]\n[[b]]\nc = 1\n")
        conf = self.load()
        assert_that(fetch_conf_path(conf, ['a', 'b'])['c'], is_('1'))
        assert_that(fetch_conf_path(conf, ['a', 'x']), is_(none()))

    def test_apply_conf_sets_known_attributes(self):
        target = Target()
        apply_conf({'value1': 'x', 'unknown': 'y'}, target)
        assert_that(target.value1, is_('x'))
        assert_that(target, is_not(has_property('unknown')))


class SessionConfigTest(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.directory)

    def test_defaults(self):
        sut = SessionConfig()
        assert_that(sut.no_device_text, is_(''))
        assert_that(sut.max_retries, is_(5))
        assert_that(sut.receive_timeout, is_(1))
        assert_that(sut.layer_config, is_(none()))

    @patch('os.path.expanduser')
    def test_load_shipped_config(self, expanduser):
        expanduser.return_value = os.path.join(self.directory, 'none.cfg')
        sut = SessionConfig.load()
        assert_that(sut.no_device_text, is_('No device connected'))
        assert_that(sut.max_retries, is_(5))
        assert_that(sut.receive_period, is_(0.1))

    @patch('os.path.expanduser')
    def test_load_overrides(self, expanduser):
        expanduser.return_value = os.path.join(self.directory, 'none.cfg')
        shutil.copy(config_filename('scansession.default', package_directory), self.directory)
        with open(config_filename('scansession', self.directory), 'w') as f:
            f.write("[session]\nmax_retries = 2\nlayer_config = service.ini\n")
        sut = SessionConfig.load(self.directory)
        assert_that(sut.no_device_text, is_('No device connected'))
        assert_that(sut.max_retries, is_(2))
        assert_that(sut.layer_config, is_('service.ini'))
