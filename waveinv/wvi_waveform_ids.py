# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Waveform records (observed, synthetic, partial derivatives) and
their binary files.

A waveform record is described by an ID holding its metadata
(observer, event, component, time window, frequency band, phases) and,
when loaded, the waveform samples.

IDs are stored in a compact binary index file, while the samples are
stored in a separate binary data file, as big-endian doubles.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import logging
import numpy as np
from .wvi_errors import DataConsistencyError
from .wvi_unknowns import PARTIAL_TYPE_CODES, PARTIAL_TYPE_NAMES
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

WAVEFORM_TYPES = ('OBS', 'SYN', 'PARTIAL')
COMPONENT_CODES = {'Z': 1, 'R': 2, 'T': 3}
COMPONENT_NAMES = {code: name for name, code in COMPONENT_CODES.items()}
# Maximum number of phases for one record
MAX_PHASES = 10

# Binary formats
_OBSERVER_DTYPE = np.dtype([
    ('station', 'S8'), ('network', 'S8'),
    ('latitude', '>f8'), ('longitude', '>f8')
])
_EVENT_DTYPE = np.dtype([
    ('event_id', 'S15'),
    ('latitude', '>f8'), ('longitude', '>f8'), ('depth', '>f8')
])
_PERIOD_DTYPE = np.dtype([('min_period', '>f8'), ('max_period', '>f8')])
_PHASE_DTYPE = np.dtype('S16')
_VOXEL_DTYPE = np.dtype([
    ('latitude', '>f8'), ('longitude', '>f8'), ('radius', '>f8')
])
_COMMON_FIELDS = [
    ('observer', '>i2'), ('event', '>i2'), ('component', 'u1'),
    ('period', 'u1'), ('phases', '>i2', (MAX_PHASES,)),
    ('start_time', '>f4'), ('npts', '>i4'), ('sampling_hz', '>f4'),
    ('convolved', 'u1'), ('start_byte', '>i8'),
]
_BASIC_ID_DTYPE = np.dtype([('kind', 'u1')] + _COMMON_FIELDS)
_PARTIAL_ID_DTYPE = np.dtype(
    _COMMON_FIELDS + [('partial_type', 'u1'), ('voxel', '>i2')])
_DATA_DTYPE = np.dtype('>f8')


class Observer():
    """
    A seismic station.

    Two observers are equal if they have the same station and network codes.
    """
    def __init__(self, station, network, latitude, longitude):
        self.station = station
        self.network = network
        self.latitude = float(latitude)
        self.longitude = float(longitude)

    def __eq__(self, other):
        if not isinstance(other, Observer):
            return NotImplemented
        return (self.station, self.network) == (other.station, other.network)

    def __hash__(self):
        return hash((self.station, self.network))

    def __str__(self):
        return f'{self.station}_{self.network}'

    def __repr__(self):
        return (
            f'Observer({self.station}, {self.network}, '
            f'{self.latitude}, {self.longitude})'
        )


class Event():
    """
    A seismic event, identified by its (Global CMT) ID.
    """
    def __init__(self, event_id, latitude, longitude, depth=0.):
        self.event_id = event_id
        self.latitude = float(latitude)
        self.longitude = float(longitude)
        self.depth = float(depth)

    def __eq__(self, other):
        if not isinstance(other, Event):
            return NotImplemented
        return self.event_id == other.event_id

    def __hash__(self):
        return hash(self.event_id)

    def __str__(self):
        return self.event_id

    def __repr__(self):
        return (
            f'Event({self.event_id}, {self.latitude}, {self.longitude}, '
            f'{self.depth})'
        )


class BasicID():
    """
    ID (and optionally waveform data) of an observed or synthetic record.

    Floating point metadata are rounded to three decimal places, as they
    are stored as single precision floats in ID files.

    Two IDs are equal if all their metadata are equal. The phases, the
    start byte and the data are ignored.

    :param kind: 'OBS' or 'SYN'
    :param sampling_hz: Sampling frequency (Hz)
    :param start_time: Start time of the window, relative to the event
        origin time (s)
    :param npts: Number of points
    :param observer: Observer
    :param event: Event
    :param component: 'Z', 'R' or 'T'
    :param min_period: Minimum period of the filter (s), 0 if not filtered
    :param max_period: Maximum period of the filter (s), inf if not
        filtered
    :param phases: Phase names
    :param start_byte: Position of the waveform in the data file
    :param convolved: Whether the record is convolved with a source
        time function (always True for observed records)
    :param data: Waveform samples, with npts points
    """
    def __init__(self, kind, sampling_hz, start_time, npts, observer, event,
                 component, min_period=0., max_period=np.inf, phases=(),
                 start_byte=0, convolved=True, data=None):
        if kind not in WAVEFORM_TYPES:
            raise ValueError(f'Invalid waveform type: "{kind}"')
        if component not in COMPONENT_CODES:
            raise ValueError(f'Invalid component: "{component}"')
        self.kind = kind
        self.sampling_hz = round(float(sampling_hz), 3)
        self.start_time = round(float(start_time), 3)
        self.npts = int(npts)
        self.observer = observer
        self.event = event
        self.component = component
        self.min_period = round(float(min_period), 3)
        self.max_period = round(float(max_period), 3)
        self.phases = tuple(phases)
        self.start_byte = int(start_byte)
        self.convolved = bool(convolved)
        if data is not None:
            data = np.array(data, dtype=float)
            if data.shape != (self.npts,):
                raise DataConsistencyError(
                    f'{self}: waveform data length ({data.size}) '
                    f'differs from npts ({self.npts})')
            data.flags.writeable = False
        self.data = data

    def _identity(self):
        return (
            self.kind, self.observer, self.event, self.component,
            self.sampling_hz, self.start_time, self.npts,
            self.min_period, self.max_period, self.convolved
        )

    def __eq__(self, other):
        if not isinstance(other, BasicID):
            return NotImplemented
        return (
            type(self) is type(other) and
            self._identity() == other._identity()
        )

    def __hash__(self):
        return hash(self._identity())

    def __str__(self):
        phases = ','.join(self.phases) if self.phases else '-'
        return (
            f'{self.observer} {self.event} {self.component} {self.kind} '
            f'{self.start_time} {self.npts} {self.sampling_hz} '
            f'{self.min_period} {self.max_period} {phases}'
        )

    def __repr__(self):
        return f'{self.__class__.__name__}({self})'

    @property
    def contains_data(self):
        """True if waveform data are loaded."""
        return self.data is not None

    def _init_kwargs(self):
        return {
            'kind': self.kind, 'sampling_hz': self.sampling_hz,
            'start_time': self.start_time, 'npts': self.npts,
            'observer': self.observer, 'event': self.event,
            'component': self.component, 'min_period': self.min_period,
            'max_period': self.max_period, 'phases': self.phases,
            'start_byte': self.start_byte, 'convolved': self.convolved,
        }

    def with_data(self, data):
        """
        Return a new ID holding the given waveform data.

        :param data: Waveform samples, with npts points
        :type data: :class:`numpy.ndarray`
        """
        kwargs = self._init_kwargs()
        kwargs['data'] = data
        return self.__class__(**kwargs)

    def times(self):
        """Return the time of each sample (s)."""
        return self.start_time + np.arange(self.npts) / self.sampling_hz


class PartialID(BasicID):
    """
    ID (and optionally waveform data) of a partial derivative record.

    :param partial_type: Partial type name (e.g., 'MU1D', 'TIME_SOURCE')
    :param voxel_position: Position of the perturbation
        (latitude, longitude, radius)

    Other parameters are those of :class:`BasicID`, except `kind`,
    which is always 'PARTIAL'.
    """
    def __init__(self, sampling_hz, start_time, npts, observer, event,
                 component, partial_type, voxel_position=(0., 0., 0.),
                 min_period=0., max_period=np.inf, phases=(), start_byte=0,
                 convolved=True, data=None):
        if partial_type not in PARTIAL_TYPE_CODES:
            raise ValueError(f'Invalid partial type: "{partial_type}"')
        self.partial_type = partial_type
        self.voxel_position = tuple(float(val) for val in voxel_position)
        super().__init__(
            'PARTIAL', sampling_hz, start_time, npts, observer, event,
            component, min_period, max_period, phases, start_byte,
            convolved, data)

    def _identity(self):
        return super()._identity() + (self.partial_type, self.voxel_position)

    def __str__(self):
        lat, lon, radius = self.voxel_position
        return (
            f'{super().__str__()} {self.partial_type} {lat} {lon} {radius}')

    def _init_kwargs(self):
        kwargs = super()._init_kwargs()
        del kwargs['kind']
        kwargs['partial_type'] = self.partial_type
        kwargs['voxel_position'] = self.voxel_position
        return kwargs


def is_pair(id0, id1, time_tolerance=20., period_tolerance=0.1):
    """
    Check if two IDs are an observed/synthetic pair.

    They are a pair if they share observer, event, component, number of
    points, sampling frequency, min and max period (within
    `period_tolerance`), and start time (within `time_tolerance`).
    If any of the two has phase information, the phase sets must be equal.
    The waveform type is ignored.

    :param id0: First ID
    :type id0: :class:`BasicID`
    :param id1: Second ID
    :type id1: :class:`BasicID`
    :param time_tolerance: Maximum start time difference (s)
    :type time_tolerance: float
    :param period_tolerance: Maximum period difference (s)
    :type period_tolerance: float

    :return: True if the IDs are a pair
    :rtype: bool
    """
    if (
        id0.observer != id1.observer or id0.event != id1.event or
        id0.component != id1.component or id0.npts != id1.npts or
        id0.sampling_hz != id1.sampling_hz
    ):
        return False
    if abs(id0.min_period - id1.min_period) > period_tolerance:
        return False
    if (
        id0.max_period != id1.max_period and
        abs(id0.max_period - id1.max_period) > period_tolerance
    ):
        return False
    if abs(id0.start_time - id1.start_time) > time_tolerance:
        return False
    if id0.phases or id1.phases:
        return set(id0.phases) == set(id1.phases)
    return True


# ---- Binary files ----
def _unique(values):
    """Unique values, in order of first appearance, and their indexes."""
    index = {}
    for val in values:
        index.setdefault(val, len(index))
    return list(index), index


def _phase_indexes(ids):
    phases, phase_index = _unique(p for _id in ids for p in _id.phases)
    indexes = np.full((len(ids), MAX_PHASES), -1, dtype='>i2')
    for n, _id in enumerate(ids):
        if len(_id.phases) > MAX_PHASES:
            raise DataConsistencyError(
                f'{_id}: more than {MAX_PHASES} phases')
        for m, phase in enumerate(_id.phases):
            indexes[n, m] = phase_index[phase]
    return phases, indexes


def _write_ids(ids, id_file, data_file, partial):
    """Write IDs (and optionally data) to binary files."""
    # pylint: disable=too-many-locals
    if not ids:
        raise DataConsistencyError('No ID to write')
    observers, observer_index = _unique(_id.observer for _id in ids)
    events, event_index = _unique(_id.event for _id in ids)
    periods, period_index = _unique(
        (_id.min_period, _id.max_period) for _id in ids)
    phases, phase_indexes = _phase_indexes(ids)
    header = [len(observers), len(events), len(periods), len(phases)]
    tables = [
        np.array(
            [(obs.station, obs.network, obs.latitude, obs.longitude)
             for obs in observers], dtype=_OBSERVER_DTYPE),
        np.array(
            [(ev.event_id, ev.latitude, ev.longitude, ev.depth)
             for ev in events], dtype=_EVENT_DTYPE),
        np.array(periods, dtype=_PERIOD_DTYPE),
        np.array(phases, dtype=_PHASE_DTYPE),
    ]
    if partial:
        voxels, voxel_index = _unique(_id.voxel_position for _id in ids)
        header.append(len(voxels))
        tables.append(np.array(voxels, dtype=_VOXEL_DTYPE))
    records = np.zeros(
        len(ids), dtype=_PARTIAL_ID_DTYPE if partial else _BASIC_ID_DTYPE)
    start_byte = 0
    for n, _id in enumerate(ids):
        rec = records[n]
        if not partial:
            rec['kind'] = 1 if _id.kind == 'OBS' else 0
        rec['observer'] = observer_index[_id.observer]
        rec['event'] = event_index[_id.event]
        rec['component'] = COMPONENT_CODES[_id.component]
        rec['period'] = period_index[(_id.min_period, _id.max_period)]
        rec['phases'] = phase_indexes[n]
        rec['start_time'] = _id.start_time
        rec['npts'] = _id.npts
        rec['sampling_hz'] = _id.sampling_hz
        rec['convolved'] = int(_id.convolved)
        rec['start_byte'] = start_byte
        if partial:
            rec['partial_type'] = PARTIAL_TYPE_CODES[_id.partial_type]
            rec['voxel'] = voxel_index[_id.voxel_position]
        start_byte += _id.npts * _DATA_DTYPE.itemsize
    with open(id_file, 'wb') as fp:
        fp.write(np.array(header, dtype='>i2').tobytes())
        for table in tables:
            fp.write(table.tobytes())
        fp.write(records.tobytes())
    logger.info(f'{len(ids)} IDs written to {id_file}')
    if data_file is None:
        return
    with open(data_file, 'wb') as fp:
        for _id in ids:
            if not _id.contains_data:
                raise DataConsistencyError(f'{_id}: no waveform data')
            fp.write(np.asarray(_id.data, dtype=_DATA_DTYPE).tobytes())
    logger.info(f'Waveform data written to {data_file}')


def _read_table(fp, dtype, count):
    return np.frombuffer(fp.read(dtype.itemsize * int(count)), dtype=dtype)


def _read_ids(id_file, data_file, partial):
    """Read IDs (and optionally data) from binary files."""
    # pylint: disable=too-many-locals
    ncounts = 5 if partial else 4
    with open(id_file, 'rb') as fp:
        counts = np.frombuffer(fp.read(2 * ncounts), dtype='>i2')
        if counts.size != ncounts:
            raise DataConsistencyError(f'{id_file}: invalid header')
        obs_table = _read_table(fp, _OBSERVER_DTYPE, counts[0])
        event_table = _read_table(fp, _EVENT_DTYPE, counts[1])
        period_table = _read_table(fp, _PERIOD_DTYPE, counts[2])
        phase_table = _read_table(fp, _PHASE_DTYPE, counts[3])
        voxel_table = (
            _read_table(fp, _VOXEL_DTYPE, counts[4]) if partial else None)
        body = fp.read()
    rec_dtype = _PARTIAL_ID_DTYPE if partial else _BASIC_ID_DTYPE
    if len(body) % rec_dtype.itemsize != 0:
        raise DataConsistencyError(f'{id_file} is invalid')
    records = np.frombuffer(body, dtype=rec_dtype)
    observers = [
        Observer(rec['station'].decode(), rec['network'].decode(),
                 rec['latitude'], rec['longitude'])
        for rec in obs_table]
    events = [
        Event(rec['event_id'].decode(), rec['latitude'], rec['longitude'],
              rec['depth'])
        for rec in event_table]
    phases = [phase.decode() for phase in phase_table]
    data = None
    if data_file is not None:
        data = np.fromfile(data_file, dtype=_DATA_DTYPE)
        if records.size:
            last = records[-1]
            expected = last['start_byte'] + last['npts'] * 8
            if os.path.getsize(data_file) != expected:
                raise DataConsistencyError(
                    f'{data_file} is invalid for {id_file}')
    ids = []
    for rec in records:
        period = period_table[rec['period']]
        kwargs = {
            'sampling_hz': rec['sampling_hz'],
            'start_time': rec['start_time'],
            'npts': rec['npts'],
            'observer': observers[rec['observer']],
            'event': events[rec['event']],
            'component': COMPONENT_NAMES[rec['component']],
            'min_period': period['min_period'],
            'max_period': period['max_period'],
            'phases': [phases[i] for i in rec['phases'] if i >= 0],
            'start_byte': rec['start_byte'],
            'convolved': bool(rec['convolved']),
        }
        if data is not None:
            start = rec['start_byte'] // 8
            kwargs['data'] = data[start:start + rec['npts']].astype(float)
        if partial:
            kwargs['partial_type'] = PARTIAL_TYPE_NAMES[rec['partial_type']]
            voxel = voxel_table[rec['voxel']]
            kwargs['voxel_position'] = (
                voxel['latitude'], voxel['longitude'], voxel['radius'])
            ids.append(PartialID(**kwargs))
        else:
            kind = 'OBS' if rec['kind'] > 0 else 'SYN'
            ids.append(BasicID(kind, **kwargs))
    logger.info(f'{len(ids)} IDs read from {id_file}')
    return ids


def write_basic_ids(ids, id_file, data_file=None):
    """
    Write observed and synthetic IDs and their waveform data.

    :param ids: IDs to write
    :type ids: list of :class:`BasicID`
    :param id_file: Output ID file
    :type id_file: str
    :param data_file: Output data file (if None, data are not written)
    :type data_file: str
    """
    _write_ids(list(ids), id_file, data_file, partial=False)


def read_basic_ids(id_file, data_file=None):
    """
    Read observed and synthetic IDs and, optionally, their waveform data.

    :param id_file: ID file
    :type id_file: str
    :param data_file: Data file (if None, data are not read)
    :type data_file: str

    :return: IDs, in file order
    :rtype: list of :class:`BasicID`
    """
    return _read_ids(id_file, data_file, partial=False)


def write_partial_ids(ids, id_file, data_file=None):
    """
    Write partial derivative IDs and their waveform data.

    :param ids: IDs to write
    :type ids: list of :class:`PartialID`
    :param id_file: Output ID file
    :type id_file: str
    :param data_file: Output data file (if None, data are not written)
    :type data_file: str
    """
    _write_ids(list(ids), id_file, data_file, partial=True)


def read_partial_ids(id_file, data_file=None):
    """
    Read partial derivative IDs and, optionally, their waveform data.

    :param id_file: ID file
    :type id_file: str
    :param data_file: Data file (if None, data are not read)
    :type data_file: str

    :return: IDs, in file order
    :rtype: list of :class:`PartialID`
    """
    return _read_ids(id_file, data_file, partial=True)
