# -*- coding: utf8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Config class for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
from configobj import ConfigObj
from configobj.validate import Validator
from .configobj_helpers import parse_configspec, get_default_config_obj
from .mandatory import mandatory_config_params
from ..wvi_errors import ConfigurationError
from ..wvi_weighting import MAX_WEIGHT_TABLES


def _float_list(input_list, min_value=None, max_length=None):
    """
    Convert a list of config values (possibly strings) to floats.

    Values beyond ``max_length`` are ignored.

    :raises ValueError: if a value cannot be converted or is smaller
        than ``min_value``
    """
    if input_list is None:
        return None
    try:
        values = [float(val) for val in input_list[:max_length]]
    except (TypeError, ValueError) as e:
        raise ValueError('Cannot parse all values in list') from e
    if min_value is not None and any(val < min_value for val in values):
        raise ValueError(f'All values must be larger than {min_value}')
    return values


def _none_from_string(value):
    """configobj keeps 'None' as a string: turn it into None."""
    if isinstance(value, list):
        value = [None if val == 'None' else val for val in value]
        return None if value == [None] else value
    return None if value == 'None' else value


class _AttributeDict(dict):
    """A dictionary whose keys are also accessible as attributes."""
    def __setitem__(self, key, value):
        super().__setattr__(key, value)
        super().__setitem__(key, value)

    def __getattr__(self, key):
        try:
            return self.__getitem__(key)
        except KeyError as err:
            raise AttributeError(err) from err

    __setattr__ = __setitem__


class _Options(_AttributeDict):
    """Command line options."""


class _Config(_AttributeDict):
    """
    Configuration parameters for the waveinv programs.

    Parameters are accessed as keys (``config['alpha']``) or as attributes
    (``config.alpha``) and start from the configspec defaults.

    .. note::

        Do not instantiate this class: use the global ``config`` object.
    """
    def __init__(self):
        super().__init__()
        # Runtime values, not part of the configspec
        self['running_from_command_line'] = False
        self['progname'] = 'wave_inversion'
        self['options'] = _Options()
        # Warnings are delivered once logging is set up
        self['warnings'] = []
        self['workdir'] = os.getcwd()
        self.update(get_default_config_obj(parse_configspec()).dict())

    def clear(self):
        """Clear the configuration and the options."""
        self['options'].clear()
        super().clear()

    def update(self, other):
        """
        Update the configuration with the values from another dictionary.

        ``'None'`` strings, alone or in lists, are converted to None.

        :param other: The dictionary with the new values
        :type other: dict
        """
        for key, value in other.items():
            self[key] = value
        for key, value in list(self.items()):
            self[key] = _none_from_string(value)

    def validate(self):
        """
        Validate the configuration against the configspec, then run the
        consistency checks between parameters.

        :raises ConfigurationError: If an error occurs while validating
            the parameters
        """
        configspec = parse_configspec()
        config_obj = ConfigObj(
            {key: val for key, val in self.items() if key in configspec},
            configspec=configspec
        )
        # "result" is True if all values are valid, False if there are no
        # values, otherwise a dict with False for each invalid entry
        result = config_obj.validate(Validator())
        if isinstance(result, dict):
            raise ConfigurationError(''.join(
                f'\nInvalid value for "{entry}": "{config_obj[entry]}"'
                for entry, valid in result.items() if not valid))
        if not result:
            raise ConfigurationError('No configuration value present!')
        # Validated values are converted to their configspec type
        self.update(config_obj.dict())
        self._check_mandatory_config_params()
        self._check_float_lists()
        self._check_components()
        self._check_inverse_methods()
        self._check_weighting()
        self._check_covariance()

    def _check_mandatory_config_params(self):
        """
        Check the mandatory configuration parameters.

        :raises ConfigurationError: If a mandatory parameter is None
        """
        messages = [
            f'"{par}" is mandatory and cannot be None'
            for par in mandatory_config_params.get(self['progname'], [])
            if self[par] is None
        ]
        if messages:
            raise ConfigurationError('\n'.join(messages))

    def _check_float_lists(self):
        """
        Convert the list parameters to lists of floats.

        :raises ConfigurationError: If an error occurs while parsing
            the parameters
        """
        min_values = {
            'alpha': 1e-30,
            'lsm_lambdas': 0.,
            'lower_upper_mantle_weights': 0.,
        }
        for param, min_value in min_values.items():
            try:
                self[param] = _float_list(self[param], min_value=min_value)
            except ValueError as msg:
                raise ConfigurationError(
                    f'Error parsing parameter "{param}": {msg}'
                ) from msg
        lum_weights = self['lower_upper_mantle_weights']
        if lum_weights is not None and len(lum_weights) != 2:
            raise ConfigurationError(
                '"lower_upper_mantle_weights" must contain two values: '
                'lower mantle weight and upper mantle weight.'
            )

    def _check_components(self):
        """
        Check that the selected components are among Z, R, T.

        :raises ConfigurationError: If an unknown component is found
        """
        if not self['components']:
            raise ConfigurationError('"components" cannot be empty')
        self['components'] = [comp.upper() for comp in self['components']]
        for comp in self['components']:
            if comp not in ('Z', 'R', 'T'):
                raise ConfigurationError(
                    f'Invalid component in "components": "{comp}"')

    def _check_inverse_methods(self):
        """
        Check the inverse method names.

        :raises ConfigurationError: If an unknown method is found
        """
        # pylint: disable=import-outside-toplevel
        from ..wvi_solvers import INVERSE_METHODS
        if self['inverse_methods'] is None:
            return
        methods = [name.upper() for name in self['inverse_methods']]
        for name in methods:
            if name not in INVERSE_METHODS:
                valid = ', '.join(INVERSE_METHODS)
                raise ConfigurationError(
                    f'Invalid inverse method: "{name}". '
                    f'Valid methods are: {valid}'
                )
        # remove duplicates, keeping order
        self['inverse_methods'] = list(dict.fromkeys(methods))

    def _check_weighting(self):
        """
        Check the weighting parameters.

        :raises ConfigurationError: If weighting parameters are inconsistent
        """
        tables = self['weight_table_files']
        if tables is not None and len(tables) > MAX_WEIGHT_TABLES:
            raise ConfigurationError(
                f'At most {MAX_WEIGHT_TABLES} files can be given in '
                '"weight_table_files"'
            )
        if (
            self['weighting_type'] in ('TAKEUCHIKOBAYASHI', 'FINAL') and
            self['external_weight_file'] is None
        ):
            raise ConfigurationError(
                f'Weighting type "{self["weighting_type"]}" requires '
                '"external_weight_file"'
            )
        if (
            self['weighting_type'] == 'LOWERUPPERMANTLE' and
            self['lower_upper_mantle_weights'] is None
        ):
            raise ConfigurationError(
                'Weighting type "LOWERUPPERMANTLE" requires '
                '"lower_upper_mantle_weights"'
            )

    def _check_covariance(self):
        """
        Check the covariance parameters.
        """
        if self['covariance_order'] is not None and self['sigma_d'] is None:
            self['warnings'].append(
                '"covariance_order" is set but "sigma_d" is None. '
                'Model covariance will not be computed.'
            )


# Shared by all the modules; starts from the configspec defaults
config = _Config()
