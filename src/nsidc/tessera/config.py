import configparser
import dataclasses
import math
import os.path

from nsidc.tessera import constants
from nsidc.tessera.spatial.grid import TOPOLOGIES


@dataclasses.dataclass
class Config:
    epsilon: float
    log_file: str
    value_property: str
    result_property: str
    weight: float
    topology: str
    z_property: str

    def show(self):
        print()
        print('Using configuration:')
        for k, v in self.__dict__.items():
            print(f'  + {k}: {v}')


def config_parser_factory(configuration_file):
    """
    Returns a ConfigParser by reading the specified file.
    """
    if configuration_file is None or not os.path.exists(configuration_file):
        raise ValueError(f'Unable to find configuration file {configuration_file}')
    cfg_parser = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
    cfg_parser.read(configuration_file)
    return cfg_parser


def default_config_parser():
    """
    Returns a ConfigParser with every section present and only default values.
    """
    cfg_parser = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
    for section in (constants.SETTINGS_SECTION_NAME,
                    constants.INTERPOLATION_SECTION_NAME,
                    constants.CONTOUR_SECTION_NAME):
        cfg_parser.add_section(section)
    return cfg_parser


def _get_configuration_value(section, name, value_type, config_parser, overrides):
    """
    Returns a value from the provided config parser; any value for the key that
    is provided in the 'overrides' dictionary will take precedence.
    """
    if overrides.get(name) is not None:
        return overrides.get(name)
    if not config_parser.has_section(section):
        config_parser.add_section(section)
    if value_type is float:
        return config_parser.getfloat(section, name)
    return config_parser.get(section, name)


def configuration(config_parser, overrides):
    """
    Returns a Config object that is populated from the provided config parser,
    with values overriden with anything provided in 'overrides'.
    """
    config_parser['DEFAULT'] = {
        'epsilon': constants.DEFAULT_EPSILON,
        'log_file': constants.DEFAULT_LOG_FILE,
        'value_property': constants.DEFAULT_VALUE_PROPERTY,
        'result_property': constants.DEFAULT_RESULT_PROPERTY,
        'weight': constants.DEFAULT_WEIGHT,
        'topology': constants.DEFAULT_TOPOLOGY,
        'z_property': constants.DEFAULT_Z_PROPERTY,
    }
    try:
        return Config(
            _get_configuration_value(constants.SETTINGS_SECTION_NAME, 'epsilon', float, config_parser, overrides),
            _get_configuration_value(constants.SETTINGS_SECTION_NAME, 'log_file', str, config_parser, overrides),
            _get_configuration_value(constants.INTERPOLATION_SECTION_NAME, 'value_property', str, config_parser, overrides),
            _get_configuration_value(constants.INTERPOLATION_SECTION_NAME, 'result_property', str, config_parser, overrides),
            _get_configuration_value(constants.INTERPOLATION_SECTION_NAME, 'weight', float, config_parser, overrides),
            _get_configuration_value(constants.INTERPOLATION_SECTION_NAME, 'topology', str, config_parser, overrides),
            _get_configuration_value(constants.CONTOUR_SECTION_NAME, 'z_property', str, config_parser, overrides),
        )
    except ValueError as e:
        raise ValueError(f'Unable to read the configuration file: {e}')


def validate(configuration):
    """
    Validates each value in the configuration.
    """
    validations = [
        ['epsilon', lambda eps: math.isfinite(eps) and eps >= 0, 'The epsilon must be a finite number not less than 0.'],
        ['weight', lambda weight: math.isfinite(weight) and weight >= 0, 'The weight must be a finite number not less than 0.'],
        ['topology', lambda topology: topology in TOPOLOGIES, f'The topology must be one of {", ".join(TOPOLOGIES)}.'],
        ['result_property', lambda name: bool(name), 'The result_property must not be empty.'],
        ['log_file', lambda path: bool(path), 'The log_file must not be empty.'],
    ]
    errors = [msg for name, fn, msg in validations if not fn(getattr(configuration, name))]
    return len(errors) == 0, errors
