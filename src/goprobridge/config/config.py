import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator, VdtTypeError

from goprobridge.device.usb_discovery import GOPRO_VENDOR_ID
from goprobridge.discovery.service_discovery import DEFAULT_NAME_MARKER, DEFAULT_SERVICE_TYPE, DEFAULT_TIMEOUT, \
    FALLBACK_ADDRESS, NO_RESULT
from goprobridge.network.selector import CELLULAR_PATTERNS, TETHER_PATTERNS

# The default extension for configuration files
config_extension = '.cfg'

# the base name of the bridge configuration files
config_name = 'goprobridge'

config_directory = os.path.dirname(__file__)


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    config_file = os.path.join(directory, name + config_extension)
    return config_file


def load_config_file_base(file, must_exist=True, spec=False):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :param spec:        when True, the file is parsed as a validation schema.
    :return: The ConfigObj instance for the file.
    """
    try:
        if not must_exist and not os.path.exists(file):
            return ConfigObj(_inspec=spec)
        if spec:
            return ConfigObj(file, file_error=must_exist, _inspec=True)
        return ConfigObj(file, interpolation='Template', file_error=must_exist)
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None, spec=False) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name.
    :param name:    The name of the base configuration
    :param subpart: The name of the specialization.
    :return: The ConfigObj for the configuration file.
    """
    configname = config_flavor(name, subpart)
    file = config_filename(configname, directory)
    return load_config_file_base(file, False, spec)


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


def is_hex_integer(value, min=None, max=None):
    """
    A validation check that accepts integers written in decimal or hex.
    >>> is_hex_integer('0x2672')
    9842
    """
    if isinstance(value, int):
        return value
    try:
        result = int(str(value), 0)
    except ValueError:
        raise VdtTypeError(value)
    if (min is not None and result < int(min)) or (max is not None and result > int(max)):
        raise VdtTypeError(value)
    return result


def load_config(name, directory, user_directory='~'):
    """
        Loads all the configuration files that relate to the given name.
        Configurations are merged in this order, later ones taking precedence:
        - the default specialization
        - the platform specialization
        - the user override
        - the base configuration
        The merged configuration is validated against the "schema" specialization,
        which also supplies the defaults for values not given.
    :param directory: the location of the configuration files
    :param user_directory: the location of the user override
    :return: the validated ConfigObj
    """
    local_config = config_flavor_file(name, directory)
    default_config = config_flavor_file(name, directory, 'default')
    platform_config = config_flavor_file(name, directory, os_name())
    user_config = load_config_file_base(os.path.join(os.path.expanduser(user_directory),
                                                     name + config_extension), must_exist=False)
    config = ConfigObj()
    config.merge(default_config)
    config.merge(platform_config)
    config.merge(user_config)
    config.merge(local_config)

    config.configspec = config_flavor_file(name, directory, 'schema', spec=True)
    validator = Validator({'hex_integer': is_hex_integer})
    result = config.validate(validator, preserve_errors=True)
    if result is not True:
        failures = ["%s/%s" % ('/'.join(sections), key) for sections, key, _ in flatten_errors(config, result)]
        raise ConfigObjError("the config file %s failed validation %s" % (name, ", ".join(failures)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:        An iterable that lists the names of the sections to resolve
    :return: The configuration object identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return
    return conf


def apply_conf_path(conf: Section, name_parts, target):
    """
    Applies a configuration path to a given target object
    :param conf:        The root configuration object
    :param name_parts:  The path of the configuration to apply
    :param target:      The target object that receives the configured values
    """
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target)


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration object to a target object.
    It does this by iterating over the items in the configuration and setting any attributes with the same name.
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)


class BridgeSettings:
    """
    The tunable values used by the bridge. Each attribute is named after its key in the
    [usb], [discovery], [network] or [events] section of the configuration.
    """
    sections = ('usb', 'discovery', 'network', 'events')

    def __init__(self):
        self.vendor_id = GOPRO_VENDOR_ID
        self.service_type = DEFAULT_SERVICE_TYPE
        self.timeout = DEFAULT_TIMEOUT
        self.name_marker = DEFAULT_NAME_MARKER
        self.on_timeout = NO_RESULT
        self.fallback_address = FALLBACK_ADDRESS
        self.strict_address = False
        self.tether_patterns = TETHER_PATTERNS
        self.cellular_patterns = CELLULAR_PATTERNS
        self.poll_period = 1.0

    @staticmethod
    def load(directory=None, name=config_name, user_directory='~'):
        """ loads the settings from the configuration files. """
        conf = load_config(name, directory or config_directory, user_directory)
        settings = BridgeSettings()
        for section in BridgeSettings.sections:
            apply_conf_path(conf, [section], settings)
        return settings
