# -*- coding: utf8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Configure waveinv from command line arguments and config file.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import sys
import types
from .config import config
from .configobj_helpers import (
    read_config_file, parse_configspec, get_default_config_obj,
    write_config_file
)
from .outdir import make_outdir
from ..wvi_errors import ConfigurationError

# config parameters holding a single path
PATH_PARAMS = [
    'basic_id_file', 'basic_data_file', 'partial_id_file',
    'partial_data_file', 'unknown_parameter_file', 'reuse_ata_file',
    'external_weight_file', 'lsm_pattern_matrix_file', 'lsm_target_file',
]
# config parameters holding a list of paths
PATH_LIST_PARAMS = ['weight_table_files']


def _expand_path(path):
    """Normalize a path and expand a leading ``~``."""
    return os.path.normpath(os.path.expanduser(path))


def _write_sample_config(configspec, progname):
    configfile = f'{progname}.conf'
    if os.path.exists(configfile):
        ans = input(
            f'{configfile} already exists. Do you want to overwrite it? [y/N] '
        )
        if ans not in ['y', 'Y']:
            return
    write_config_file(get_default_config_obj(configspec), configfile)
    print(f'Sample config file written to: {configfile}')


def _build_config_obj(configspec, config_file, config_overrides):
    """
    Read the config file (if any) and apply the overrides on top of it.

    :return: the ConfigObj instance, or None if there is neither a config
        file nor overrides
    """
    config_obj = None
    if config_file:
        config_obj = read_config_file(config_file, configspec)
    if config_overrides is None:
        return config_obj
    if config_obj is None:
        config_obj = get_default_config_obj(configspec)
    if not hasattr(config_overrides, 'items'):
        raise ValueError('"config_overrides" must be a dict-like.')
    for key, value in config_overrides.items():
        config_obj[key] = value
    return config_obj


def _expand_config_paths(options):
    for param in PATH_PARAMS:
        if config[param]:
            config[param] = _expand_path(config[param])
    for param in PATH_LIST_PARAMS:
        if config[param]:
            config[param] = [_expand_path(path) for path in config[param]]
    if getattr(options, 'input_dirs', None):
        options.input_dirs = [_expand_path(path) for path in options.input_dirs]


def configure_cli(options=None, progname='wave_inversion',
                  config_overrides=None):
    """
    Configure waveinv from command line arguments and config file.

    The global config object is updated and validated, all the paths it
    contains are expanded, then a new output directory is created and the
    configuration used for the run is saved there as ``<progname>.conf``.

    Configuration errors terminate the program with an error message.

    :param options: An object containing command line options
    :type options: A generic object
    :param progname: The name of the program
    :type progname: str
    :param config_overrides: A dictionary with parameters that override or
        extend those defined in the config file
    :type config_overrides: dict
    """
    if options is None:
        options = types.SimpleNamespace()
    try:
        configspec = parse_configspec()
        if getattr(options, 'sampleconf', None):
            _write_sample_config(configspec, progname)
            sys.exit(0)
        config_file = getattr(options, 'config_file', None)
        if config_file:
            config_file = options.config_file = _expand_path(config_file)
        config_obj = _build_config_obj(
            configspec, config_file, config_overrides)
        if config_obj is not None:
            config.update(config_obj.dict())
            config.running_from_command_line = True
        config.progname = progname
        config.validate()
    except ConfigurationError as msg:
        sys.exit(msg)
    _expand_config_paths(options)

    tag = getattr(options, 'tag', None) or config.output_folder_tag
    options.outdir = make_outdir(
        _expand_path(getattr(options, 'outdir', '.')), tag,
        config.append_folder_date)
    if config_obj is not None:
        with open(
                os.path.join(options.outdir, f'{progname}.conf'), 'wb') as fp:
            config_obj.write(fp)
    config.options = options
