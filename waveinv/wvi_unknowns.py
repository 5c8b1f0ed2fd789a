# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Unknown parameters of the model vector m in Am=d.

Each unknown parameter is described by a parameter type (LAYER, VOXEL,
SOURCE, RECEIVER), a variable type (e.g., Vs, MU, Qmu, TIME), a position
and a weighting representing the volume (or width) of the parameter.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import logging
from .wvi_errors import ConfigurationError
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

PARAMETER_TYPES = ('LAYER', 'VOXEL', 'SOURCE', 'RECEIVER')

VARIABLE_TYPES = (
    'RHO',
    # isotropic
    'Vp', 'Vs', 'Vb', 'R', 'LAMBDA', 'MU', 'LAMBDA2MU', 'KAPPA',
    # transverse isotropy
    'Vpv', 'Vph', 'Vsv', 'Vsh', 'ETA', 'A', 'C', 'F', 'L', 'N', 'XI',
    # attenuation
    'Qmu', 'Qkappa',
    # others
    'TIME',
)

# Codes used in the binary partial ID files
PARTIAL_TYPE_CODES = {
    'RHO1D': 0, 'LAMBDA1D': 1, 'MU1D': 2, 'KAPPA1D': 3, 'LAMBDA2MU1D': 4,
    'A1D': 11, 'C1D': 12, 'F1D': 13, 'L1D': 14, 'N1D': 15,
    'VP1D': 21, 'VS1D': 22, 'R1D': 23, 'Q1D': 24,
    'RHO3D': 30, 'LAMBDA3D': 31, 'MU3D': 32, 'KAPPA3D': 33,
    'LAMBDA2MU3D': 34,
    'A3D': 41, 'C3D': 42, 'F3D': 43, 'L3D': 44, 'N3D': 45,
    'VP3D': 51, 'VS3D': 52, 'R3D': 53, 'Q3D': 54,
    'TIME_SOURCE': 80, 'TIME_RECEIVER': 90,
}
PARTIAL_TYPE_NAMES = {code: name for name, code in PARTIAL_TYPE_CODES.items()}

# Variable types which have a partial derivative for LAYER and VOXEL
_PARTIAL_VARIABLES = {
    'RHO': 'RHO', 'LAMBDA': 'LAMBDA', 'MU': 'MU', 'KAPPA': 'KAPPA',
    'LAMBDA2MU': 'LAMBDA2MU', 'A': 'A', 'C': 'C', 'F': 'F', 'L': 'L',
    'N': 'N', 'Vp': 'VP', 'Vs': 'VS', 'R': 'R', 'Qmu': 'Q',
}

# Decimal places used to compare positions
RADIUS_DECIMALS = 3
LATLON_DECIMALS = 4


def partial_type_for(parameter_type, variable_type):
    """
    Return the partial type corresponding to a parameter type and a
    variable type.

    :param parameter_type: Parameter type (LAYER, VOXEL, SOURCE, RECEIVER)
    :type parameter_type: str
    :param variable_type: Variable type
    :type variable_type: str

    :return: Partial type name (e.g., 'MU1D', 'TIME_SOURCE')
    :rtype: str

    :raises ConfigurationError: If there is no corresponding partial type
    """
    if parameter_type in ('LAYER', 'VOXEL'):
        try:
            var = _PARTIAL_VARIABLES[variable_type]
        except KeyError as err:
            raise ConfigurationError(
                f'No partial type for {parameter_type} {variable_type}'
            ) from err
        suffix = '1D' if parameter_type == 'LAYER' else '3D'
        return f'{var}{suffix}'
    if parameter_type in ('SOURCE', 'RECEIVER') and variable_type == 'TIME':
        return f'TIME_{parameter_type}'
    raise ConfigurationError(
        f'No partial type for {parameter_type} {variable_type}')


def partial_key(partial_id):
    """
    Key identifying the unknown parameter a partial derivative refers to.

    :param partial_id: Partial derivative record
    :type partial_id: :class:`~waveinv.wvi_waveform_ids.PartialID`

    :return: A hashable key, comparable with
        :attr:`UnknownParameter.key`
    :rtype: tuple
    """
    ptype = partial_id.partial_type
    if ptype == 'TIME_SOURCE':
        return (ptype, partial_id.event.event_id)
    if ptype == 'TIME_RECEIVER':
        return (ptype, str(partial_id.observer))
    lat, lon, radius = partial_id.voxel_position
    if ptype.endswith('1D'):
        return (ptype, round(radius, RADIUS_DECIMALS))
    return (
        ptype, round(lat, LATLON_DECIMALS), round(lon, LATLON_DECIMALS),
        round(radius, RADIUS_DECIMALS)
    )


class UnknownParameter():
    """
    A scalar unknown of the model vector.

    The position depends on the parameter type:

    - LAYER: radius (km)
    - VOXEL: (latitude, longitude, radius)
    - SOURCE: event ID
    - RECEIVER: observer string, ``<station>_<network>``

    Two parameters are equal if they have the same parameter type,
    variable type and position. The weighting is ignored.
    """
    __slots__ = ('_parameter_type', '_variable_type', '_position',
                 '_weighting', '_partial_type')

    def __init__(self, parameter_type, variable_type, position,
                 weighting=1.0):
        if parameter_type not in PARAMETER_TYPES:
            raise ConfigurationError(
                f'Unknown parameter type: "{parameter_type}"')
        if variable_type not in VARIABLE_TYPES:
            raise ConfigurationError(
                f'Unknown variable type: "{variable_type}"')
        if parameter_type == 'LAYER':
            position = float(position)
        elif parameter_type == 'VOXEL':
            position = tuple(float(val) for val in position)
            if len(position) != 3:
                raise ConfigurationError(
                    'VOXEL position must be (latitude, longitude, radius)')
        else:
            position = str(position)
        self._parameter_type = parameter_type
        self._variable_type = variable_type
        self._position = position
        self._weighting = float(weighting)
        self._partial_type = partial_type_for(parameter_type, variable_type)

    @property
    def parameter_type(self):
        """Parameter type."""
        return self._parameter_type

    @property
    def variable_type(self):
        """Variable type."""
        return self._variable_type

    @property
    def position(self):
        """Position of the parameter."""
        return self._position

    @property
    def weighting(self):
        """Weighting (volume or width) of the parameter."""
        return self._weighting

    @property
    def partial_type(self):
        """Type of the partial derivatives for this parameter."""
        return self._partial_type

    @property
    def key(self):
        """Hashable key, comparable with :func:`partial_key`."""
        ptype = self._partial_type
        if self._parameter_type == 'LAYER':
            return (ptype, round(self._position, RADIUS_DECIMALS))
        if self._parameter_type == 'VOXEL':
            lat, lon, radius = self._position
            return (
                ptype, round(lat, LATLON_DECIMALS),
                round(lon, LATLON_DECIMALS), round(radius, RADIUS_DECIMALS)
            )
        return (ptype, self._position)

    def matches_partial(self, partial_id):
        """Return True if partial_id is a derivative for this parameter."""
        return self.key == partial_key(partial_id)

    def __eq__(self, other):
        if not isinstance(other, UnknownParameter):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    def __str__(self):
        if self._parameter_type == 'VOXEL':
            position = ' '.join(str(val) for val in self._position)
        else:
            position = str(self._position)
        return (
            f'{self._parameter_type} {self._variable_type} {position} '
            f'{self._weighting}'
        )

    def __repr__(self):
        return f'UnknownParameter({self})'

    @classmethod
    def from_record(cls, record):
        """
        Create an unknown parameter from a text record.

        :param record: Text record, e.g. ``LAYER Vs 5771.0 50.0``
        :type record: str

        :return: Unknown parameter
        :rtype: :class:`UnknownParameter`

        :raises ConfigurationError: If the record cannot be parsed
        """
        parts = record.split()
        try:
            parameter_type = parts[0]
            if parameter_type == 'VOXEL':
                variable_type, lat, lon, radius, weighting = parts[1:6]
                position = (lat, lon, radius)
            else:
                variable_type, position, weighting = parts[1:4]
            return cls(parameter_type, variable_type, position, weighting)
        except (IndexError, ValueError) as err:
            raise ConfigurationError(
                f'Unable to parse unknown parameter: "{record}"') from err


def read_unknown_parameters(filename):
    """
    Read unknown parameters from file.

    Empty lines and lines starting with "#" are ignored.

    :param filename: Unknown parameter file
    :type filename: str

    :return: Unknown parameters, in file order
    :rtype: tuple of :class:`UnknownParameter`
    """
    unknowns = []
    with open(filename, 'r', encoding='utf-8') as fp:
        for line in fp:
            line = line.split('#')[0].strip()
            if not line:
                continue
            unknowns.append(UnknownParameter.from_record(line))
    if len(set(unknowns)) != len(unknowns):
        logger.warning(f'There are duplicated unknown parameters in {filename}')
    if not unknowns:
        raise ConfigurationError(f'No unknown parameter found in {filename}')
    logger.info(f'{len(unknowns)} unknown parameters read from {filename}')
    return tuple(unknowns)


def write_unknown_parameters(unknowns, filename):
    """
    Write unknown parameters to file.

    :param unknowns: Unknown parameters
    :type unknowns: list of :class:`UnknownParameter`
    :param filename: Output file
    :type filename: str
    """
    with open(filename, 'w', encoding='utf-8') as fp:
        for unknown in unknowns:
            fp.write(f'{unknown}\n')
    logger.info(f'{len(unknowns)} unknown parameters written to {filename}')


def write_known_parameters(unknowns, values, filename):
    """
    Write unknown parameters together with their values.

    :param unknowns: Unknown parameters
    :type unknowns: list of :class:`UnknownParameter`
    :param values: Parameter values
    :type values: :class:`numpy.ndarray`
    :param filename: Output file
    :type filename: str
    """
    if len(unknowns) != len(values):
        raise ValueError(
            f'Number of unknowns ({len(unknowns)}) and values '
            f'({len(values)}) differ')
    with open(filename, 'w', encoding='utf-8') as fp:
        for unknown, value in zip(unknowns, values):
            fp.write(f'{unknown} {value}\n')
