import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# the directory holding the schema and defaults shipped with the package
package_directory = os.path.dirname(os.path.abspath(__file__))


def config_flavor(name, flavor=None):
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file, named after the base, followed by a period and then the
    specialization. A missing file gives an empty configuration.
    """
    return load_config_file_base(config_filename(config_flavor(name, subpart), directory), False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def load_config(name, directory, schema_directory=package_directory):
    """
        Loads all the configuration files that relate to the given name.
        Later files override earlier ones:
        - the default specialization
        - the platform specialization
        - the user override in the home directory
        - the base configuration
        The result is validated against the "schema" specialization, which also supplies
        the defaults for missing values.
    :param directory: the location of the configuration files
    :param schema_directory: the location of the schema file
    :return: the validated ConfigObj
    """
    schema = config_filename(config_flavor(name, 'schema'), schema_directory)
    config = ConfigObj(configspec=schema)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(os.path.expanduser('~/' + name + config_extension), must_exist=False))
    config.merge(config_flavor_file(name, directory))

    result = config.validate(Validator())
    if result is not True:
        failures = []
        for sections, key, error in flatten_errors(config, result):
            failures.append("%s: %s" % ('.'.join(sections + [key or '']), error or 'missing'))
        raise ConfigObjError("the config file %s failed validation %s" % (name, ', '.join(failures)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:   An iterable that lists the names of the sections to descend
    :return: The configuration section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf_path(conf: Section, name_parts, target):
    """
    Applies a configuration section to a given target object
    :param conf:        The root configuration object
    :param name_parts:  The path of the section to apply
    :param target:      The target object that receives the configured values
    """
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target)


def apply_conf(conf: Section, target):
    """
    Sets the attributes of the target object that have the same name as the items in the configuration.
    Items with no corresponding attribute are ignored.
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)


class SessionConfig:
    """
    The tunable settings of a session.

    :param no_device_text: the placeholder device's name. Empty for no placeholder.
    :param max_retries: how many times a failing command is sent before its failure is reported
    :param receive_timeout: how long, in milliseconds, each receive waits for a message
    :param receive_period: seconds between receives when a ReceiveLoop drives the session
    :param layer_config: passed to the device layer when the session opens
    """
    config_name = 'scansession'
    section = 'session'

    def __init__(self, no_device_text='', max_retries=5, receive_timeout=1, receive_period=0.1, layer_config=None):
        self.no_device_text = no_device_text
        self.max_retries = max_retries
        self.receive_timeout = receive_timeout
        self.receive_period = receive_period
        self.layer_config = layer_config

    @classmethod
    def load(cls, directory=package_directory, name=config_name):
        """ builds a configuration from the config files for the given name. """
        config = cls()
        apply_conf_path(load_config(name, directory), [cls.section], config)
        return config
