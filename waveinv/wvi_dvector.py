# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Data vector: paired and weighted observed and synthetic timewindows.

The data vector d of Am=d is the concatenation of the weighted residuals
(obs - syn) of all the timewindows.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import logging
from types import MappingProxyType
import numpy as np
from .wvi_errors import DataConsistencyError, NumericalError
from .wvi_waveform_ids import is_pair
from .wvi_weighting import WeightingHandler
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

# Minimum number of distinct events for a station to be kept
# (when "at_least_three_events" is set)
MIN_EVENTS_PER_STATION = 3


def _accept_all(_id):
    return True


def _check_duplicates(ids, label):
    seen = set()
    for _id in ids:
        if _id in seen:
            raise DataConsistencyError(
                f'Duplicate {label} detected: {_id}')
        seen.add(_id)


class Dvector():
    """
    Paired observed and synthetic timewindows, with their weights.

    :param basic_ids: Observed and synthetic IDs, with data
    :type basic_ids: list of :class:`~waveinv.wvi_waveform_ids.BasicID`
    :param chooser: Selection predicate ``f(id) -> bool``
        (default: all IDs are used)
    :type chooser: callable
    :param weighting: Weighting policy (default: identity)
    :type weighting: :class:`~waveinv.wvi_weighting.WeightingHandler`
    :param at_least_three_events: Only keep stations recording at least
        three distinct events
    :type at_least_three_events: bool
    :param time_tolerance: Maximum start time difference for pairing (s)
    :type time_tolerance: float
    :param period_tolerance: Maximum period difference for pairing (s)
    :type period_tolerance: float

    .. note::

        Dvector objects are read-only once constructed.
        Use :meth:`copy` to build a Dvector with a different weighting.
    """
    # pylint: disable=too-many-instance-attributes

    def __init__(self, basic_ids, chooser=None, weighting=None,
                 at_least_three_events=False, time_tolerance=20.,
                 period_tolerance=0.1):
        # pylint: disable=too-many-arguments
        self._basic_ids = tuple(basic_ids)
        self._chooser = chooser or _accept_all
        self._weighting = weighting or WeightingHandler('IDENTITY')
        self._at_least_three_events = at_least_three_events
        self._time_tolerance = time_tolerance
        self._period_tolerance = period_tolerance
        obs_ids, syn_ids = self._pair()
        if at_least_three_events:
            obs_ids, syn_ids = self._select_stations(obs_ids, syn_ids)
        if not obs_ids:
            raise DataConsistencyError('No observed/synthetic pair found')
        self._obs_ids = tuple(obs_ids)
        self._syn_ids = tuple(syn_ids)
        self._weights = self._weighting.compute_weights(obs_ids, syn_ids)
        self._weights.flags.writeable = False
        self._read()

    def _pair(self):
        """Filter, check and pair observed and synthetic IDs."""
        for _id in self._basic_ids:
            if not _id.contains_data:
                raise DataConsistencyError(f'{_id}: no waveform data')
        obs = [_id for _id in self._basic_ids
               if _id.kind == 'OBS' and self._chooser(_id)]
        syn = [_id for _id in self._basic_ids
               if _id.kind == 'SYN' and self._chooser(_id)]
        _check_duplicates(obs, 'observed')
        _check_duplicates(syn, 'synthetic')
        consumed = [False] * len(obs)
        obs_ids = []
        syn_ids = []
        for syn_id in syn:
            for n, obs_id in enumerate(obs):
                if consumed[n]:
                    continue
                if is_pair(obs_id, syn_id, self._time_tolerance,
                           self._period_tolerance):
                    consumed[n] = True
                    obs_ids.append(obs_id)
                    syn_ids.append(syn_id)
                    break
        if len(obs) != len(syn) or len(obs_ids) != len(syn):
            logger.warning(
                f'{len(obs)} observed and {len(syn)} synthetic timewindows '
                f'selected, {len(obs_ids)} pairs found. '
                'Unpaired timewindows are ignored')
        logger.info(f'{len(obs_ids)} observed/synthetic pairs found')
        return obs_ids, syn_ids

    @staticmethod
    def _select_stations(obs_ids, syn_ids):
        events = {}
        for _id in obs_ids:
            events.setdefault(_id.observer, set()).add(_id.event)
        keep = {
            observer for observer, evs in events.items()
            if len(evs) >= MIN_EVENTS_PER_STATION}
        for observer in sorted(set(events) - keep, key=str):
            logger.info(
                f'{observer}: less than {MIN_EVENTS_PER_STATION} events, '
                'station not used')
        pairs = [
            (obs, syn) for obs, syn in zip(obs_ids, syn_ids)
            if obs.observer in keep]
        return [p[0] for p in pairs], [p[1] for p in pairs]

    def _read(self):
        """Weight the waveforms and compute norms and variances."""
        nwin = len(self._obs_ids)
        obs_vectors = []
        syn_vectors = []
        d_vectors = []
        start_points = np.zeros(nwin, dtype=int)
        npts = 0
        event_res = {}
        event_obs = {}
        station_res = {}
        station_obs = {}
        for n, (obs, syn) in enumerate(zip(self._obs_ids, self._syn_ids)):
            weight = self._weights[n]
            obs_vec = obs.data * weight
            syn_vec = syn.data * weight
            d_vec = obs_vec - syn_vec
            for vec in (obs_vec, syn_vec, d_vec):
                vec.flags.writeable = False
            obs_vectors.append(obs_vec)
            syn_vectors.append(syn_vec)
            d_vectors.append(d_vec)
            start_points[n] = npts
            npts += obs.npts
            res2 = np.dot(d_vec, d_vec)
            obs2 = np.dot(obs_vec, obs_vec)
            event_res[obs.event] = event_res.get(obs.event, 0.) + res2
            event_obs[obs.event] = event_obs.get(obs.event, 0.) + obs2
            station_res[obs.observer] =\
                station_res.get(obs.observer, 0.) + res2
            station_obs[obs.observer] =\
                station_obs.get(obs.observer, 0.) + obs2
        self._obs_vectors = tuple(obs_vectors)
        self._syn_vectors = tuple(syn_vectors)
        self._d_vectors = tuple(d_vectors)
        start_points.flags.writeable = False
        self._start_points = start_points
        self._window_index = {}
        for n, syn in enumerate(self._syn_ids):
            key = (syn.observer, syn.event, syn.component)
            self._window_index.setdefault(key, []).append(n)
        self._npts = npts
        obs_norm2 = sum(event_obs.values())
        d_norm2 = sum(event_res.values())
        if obs_norm2 <= 0:
            raise NumericalError(
                'Observed waveforms have zero energy: '
                'variance cannot be computed')
        self._obs_norm = np.sqrt(obs_norm2)
        self._d_norm = np.sqrt(d_norm2)
        self._variance = d_norm2 / obs_norm2
        self._event_variance = MappingProxyType(
            self._ratios(event_res, event_obs))
        self._station_variance = MappingProxyType(
            self._ratios(station_res, station_obs))
        logger.info(
            f'{nwin} timewindows, {npts} data points, '
            f'normalized variance: {self._variance:.6f}')

    @staticmethod
    def _ratios(res, obs):
        ratios = {}
        for key, res2 in res.items():
            if obs[key] <= 0:
                logger.warning(
                    f'{key}: weighted observed waveforms have zero energy, '
                    'variance not computed')
                continue
            ratios[key] = res2 / obs[key]
        return ratios

    def copy(self, weighting=None):
        """
        Build a new Dvector from the same records, with a different
        weighting.

        :param weighting: Weighting policy (default: same weighting)
        :type weighting: :class:`~waveinv.wvi_weighting.WeightingHandler`
        """
        return Dvector(
            self._basic_ids, self._chooser, weighting or self._weighting,
            self._at_least_three_events, self._time_tolerance,
            self._period_tolerance)

    # ---- read-only properties ----
    @property
    def weighting(self):
        """Weighting policy."""
        return self._weighting

    @property
    def n_timewindow(self):
        """Number of timewindows."""
        return len(self._obs_ids)

    @property
    def npts(self):
        """Total number of data points."""
        return self._npts

    @property
    def start_points(self):
        """Index of the first point of each timewindow in d."""
        return self._start_points

    @property
    def weights(self):
        """Weight of each timewindow."""
        return self._weights

    @property
    def obs_ids(self):
        return self._obs_ids

    @property
    def syn_ids(self):
        return self._syn_ids

    @property
    def obs_vectors(self):
        """Weighted observed waveforms."""
        return self._obs_vectors

    @property
    def syn_vectors(self):
        """Weighted synthetic waveforms."""
        return self._syn_vectors

    @property
    def d_vectors(self):
        """Weighted residuals (obs - syn)."""
        return self._d_vectors

    @property
    def variance(self):
        """Normalized variance |d|^2/|obs|^2."""
        return self._variance

    @property
    def obs_norm(self):
        return self._obs_norm

    @property
    def d_norm(self):
        return self._d_norm

    @property
    def event_variance(self):
        """Normalized variance for each event (read-only mapping)."""
        return self._event_variance

    @property
    def station_variance(self):
        """Normalized variance for each observer (read-only mapping)."""
        return self._station_variance

    @property
    def used_events(self):
        return {_id.event for _id in self._obs_ids}

    @property
    def used_observers(self):
        return {_id.observer for _id in self._obs_ids}

    @property
    def full_obs_vector(self):
        return self.combine(self._obs_vectors)

    @property
    def full_syn_vector(self):
        return self.combine(self._syn_vectors)

    @property
    def full_d_vector(self):
        return self.combine(self._d_vectors)

    @property
    def num_independent(self):
        """
        Number of independent data: sum of npts / (min_period * sampling).
        """
        total = 0.
        for _id in self._obs_ids:
            if _id.min_period <= 0:
                raise NumericalError(
                    f'{_id}: minimum period must be positive to count '
                    'independent data')
            total += _id.npts / (_id.min_period * _id.sampling_hz)
        return total

    # ---- vector helpers ----
    def combine(self, vectors):
        """
        Concatenate one vector per timewindow into a single vector.

        :param vectors: One vector per timewindow
        :type vectors: list of :class:`numpy.ndarray`

        :return: Combined vector, of length npts
        :rtype: :class:`numpy.ndarray`
        """
        if len(vectors) != self.n_timewindow:
            raise DataConsistencyError(
                f'Expected {self.n_timewindow} vectors, got {len(vectors)}')
        for vec, _id in zip(vectors, self._obs_ids):
            if len(vec) != _id.npts:
                raise DataConsistencyError(
                    f'{_id}: vector length ({len(vec)}) differs from '
                    f'npts ({_id.npts})')
        return np.concatenate(vectors)

    def separate(self, vector):
        """
        Split a vector of length npts into one vector per timewindow.

        :param vector: Vector of length npts
        :type vector: :class:`numpy.ndarray`

        :return: One vector per timewindow
        :rtype: list of :class:`numpy.ndarray`
        """
        vector = np.asarray(vector)
        if vector.size != self._npts:
            raise DataConsistencyError(
                f'Vector length ({vector.size}) differs from npts '
                f'({self._npts})')
        return np.split(vector, self._start_points[1:])

    def _same_band(self, id0, id1):
        if abs(id0.min_period - id1.min_period) > self._period_tolerance:
            return False
        if id0.max_period == id1.max_period:
            return True
        return abs(id0.max_period - id1.max_period) <= self._period_tolerance

    def which_timewindow(self, _id, time_tolerance=1.):
        """
        Find the timewindow an ID belongs to.

        The ID must have the same observer, event, component and frequency
        band as the timewindow, with a start time within `time_tolerance`.
        Phases are checked only when the ID is not a partial derivative.

        :param _id: Any waveform ID
        :type _id: :class:`~waveinv.wvi_waveform_ids.BasicID`
        :param time_tolerance: Maximum start time difference (s)
        :type time_tolerance: float

        :return: Timewindow index or -1 if not found
        :rtype: int
        """
        key = (_id.observer, _id.event, _id.component)
        for n in self._window_index.get(key, ()):
            syn = self._syn_ids[n]
            if (
                abs(_id.start_time - syn.start_time) > time_tolerance or
                not self._same_band(_id, syn)
            ):
                continue
            if _id.kind != 'PARTIAL' and not is_pair(
                    _id, syn, time_tolerance, self._period_tolerance):
                continue
            return n
        return -1

    def window_variances(self):
        """
        Normalized variance of each timewindow.

        Zero-weighted timewindows have a zero variance.
        """
        variances = np.zeros(self.n_timewindow)
        for n, (obs, res) in enumerate(zip(self._obs_vectors,
                                            self._d_vectors)):
            obs2 = np.dot(obs, obs)
            variances[n] = np.dot(res, res) / obs2 if obs2 > 0 else 0.
        return variances
