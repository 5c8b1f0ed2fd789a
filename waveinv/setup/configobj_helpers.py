# -*- coding: utf8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Helper functions for using ConfigObj in waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
from io import BytesIO
from configobj import ConfigObj, ConfigObjError
from configobj.validate import Validator
from ..wvi_errors import ConfigurationError

CONFIGSPEC_FILE = os.path.join(os.path.dirname(__file__), 'configspec.conf')


def read_config_file(config_file, configspec=None):
    """
    Read a configuration file and return a ConfigObj object.

    :param config_file: path to the configuration file
    :type config_file: str
    :param configspec: the configuration specification
    :type configspec: ConfigObj

    :return: ConfigObj object
    :rtype: ConfigObj

    :raises ConfigurationError: if the file cannot be read or parsed
    """
    kwargs = {
        'configspec': configspec,
        'file_error': True,
        'default_encoding': 'utf8'
    }
    if configspec is None:
        # reading a configspec: values are check strings, not lists
        kwargs |= {
            'interpolation': False,
            'list_values': False,
            '_inspec': True,
        }
    try:
        return ConfigObj(config_file, **kwargs)
    except IOError as err:
        raise ConfigurationError(str(err)) from err
    except ConfigObjError as err:
        raise ConfigurationError(
            f'Unable to read "{config_file}": {err}') from err


def parse_configspec():
    """
    Parse the waveinv configuration specification.

    :return: ConfigObj object
    :rtype: ConfigObj
    """
    return read_config_file(CONFIGSPEC_FILE)


def get_default_config_obj(configspec):
    """
    Return a ConfigObj object with default values.

    Comments from the configspec are kept, so that the object can be
    written as a commented sample config file.

    :param configspec: ConfigObj object with the configuration specification
    :type configspec: ConfigObj

    :return: ConfigObj object
    :rtype: ConfigObj
    """
    config_obj = ConfigObj(configspec=configspec, default_encoding='utf8')
    config_obj.validate(Validator())
    config_obj.defaults = []
    config_obj.initial_comment = configspec.initial_comment
    config_obj.comments = configspec.comments
    config_obj.final_comment = configspec.final_comment
    return config_obj


def write_config_file(config_obj, filepath):
    """
    Write a config object to file.

    Trailing commas from one-element lists are removed.

    :param config_obj: ConfigObj instance to write
    :type config_obj: ConfigObj
    :param filepath: Path to the file to write
    :type filepath: str
    """
    buffer = BytesIO()
    config_obj.write(buffer)
    with open(filepath, 'w', encoding='utf8') as fp:
        for line in buffer.getvalue().decode('utf8').splitlines():
            if line.endswith(',') and not line.lstrip().startswith('#'):
                line = line.rstrip(',')
            fp.write(f'{line}\n')
