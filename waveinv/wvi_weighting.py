# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Weighting of observed/synthetic timewindows.

A weight is computed for each timewindow and applied to both the data
vector and the partial derivatives, so that the misfit (Wd - WAm) is
minimized.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import logging
import numpy as np
from obspy.geodetics import gps2dist_azimuth, locations2degrees
from .wvi_errors import (
    ConfigurationError, DataConsistencyError, NumericalError)
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

WEIGHTING_TYPES = (
    'IDENTITY', 'RECIPROCAL', 'TAKEUCHIKOBAYASHI', 'FINAL',
    'LOWERUPPERMANTLE', 'USERFUNCTION'
)
MAX_WEIGHT_TABLES = 5

# Empirical weights over 5 degree bins of epicentral distance and azimuth
DISTANCE_HISTOGRAM = {
    70: 0.741, 75: 0.777, 80: 0.938, 85: 1.187, 90: 1.200, 95: 1.157
}
AZIMUTH_HISTOGRAM = {
    310: 1.0, 315: 0.642, 320: 0.426, 325: 0.538, 330: 0.769, 335: 0.939,
    340: 1.556, 345: 1.414, 350: 1.4, 355: 1.4, 0: 1.0, 5: 1.0
}
HISTOGRAM_BIN_WIDTH = 5


def _table_key(event_id, station, network, latitude, longitude, component):
    return (
        event_id, station, network, round(float(latitude), 4),
        round(float(longitude), 4), component.upper()
    )


def _window_key(_id):
    obs = _id.observer
    return _table_key(
        _id.event.event_id, obs.station, obs.network,
        obs.latitude, obs.longitude, _id.component)


def read_weight_table(filename):
    """
    Read a weight table.

    Each line has the format:
    ``eventID station network latitude longitude component weight``.
    Empty lines and lines starting with "#" are ignored.

    :param filename: Weight table file
    :type filename: str

    :return: Weights, keyed by window
    :rtype: dict
    """
    table = {}
    with open(filename, 'r', encoding='utf-8') as fp:
        for line in fp:
            line = line.split('#')[0].strip()
            if not line:
                continue
            try:
                evid, sta, net, lat, lon, comp, weight = line.split()
                table[_table_key(evid, sta, net, lat, lon, comp)] =\
                    float(weight)
            except ValueError as err:
                raise ConfigurationError(
                    f'{filename}: invalid line: "{line}"') from err
    logger.info(f'{len(table)} weights read from {filename}')
    return table


def read_external_weights(filename):
    """Read one weight per line."""
    try:
        return np.loadtxt(filename, dtype=float, ndmin=1)
    except (OSError, ValueError) as err:
        raise ConfigurationError(
            f'Unable to read external weights from {filename}: {err}'
        ) from err


def distance_histogram_weight(obs_id):
    """Empirical weight over epicentral distance (1 outside bins)."""
    event, observer = obs_id.event, obs_id.observer
    distance = locations2degrees(
        event.latitude, event.longitude,
        observer.latitude, observer.longitude)
    _bin = int(distance // HISTOGRAM_BIN_WIDTH * HISTOGRAM_BIN_WIDTH)
    return DISTANCE_HISTOGRAM.get(_bin, 1.)


def azimuth_histogram_weight(obs_id):
    """Empirical weight over event-to-station azimuth (1 outside bins)."""
    event, observer = obs_id.event, obs_id.observer
    _, azimuth, _ = gps2dist_azimuth(
        event.latitude, event.longitude,
        observer.latitude, observer.longitude)
    _bin = int(azimuth // HISTOGRAM_BIN_WIDTH * HISTOGRAM_BIN_WIDTH) % 360
    return AZIMUTH_HISTOGRAM.get(_bin, 1.)


def is_lower_mantle(phases):
    """True if any of the phases interacts with the core."""
    return any(
        'c' in phase or 'K' in phase or 'diff' in phase for phase in phases)


class WeightingHandler():
    """
    Compute timewindow weights.

    :param weighting_type: One of :data:`WEIGHTING_TYPES`
    :type weighting_type: str
    :param reciprocal_waveform: Waveform used for the peak amplitude,
        'obs' or 'syn'
    :type reciprocal_waveform: str
    :param standard_component: If not None, the peak amplitude is measured
        on this component for every window of the same station and event
    :type standard_component: str
    :param time_tolerance: Observed/synthetic start time difference above
        which a window gets a zero weight (RECIPROCAL only)
    :type time_tolerance: float
    :param component_factors: Multiplicative factor for each component,
        e.g. ``{'Z': 1., 'R': 1., 'T': 2.}``. The square root is applied.
    :type component_factors: dict
    :param balance_component: Balance the total weight of each component
    :type balance_component: bool
    :param balance_geometry: Down-weight clustered event/station pairs
    :type balance_geometry: bool
    :param geometry_radius: Radius (degrees) for geometry balancing
    :type geometry_radius: float
    :param weight_tables: Weight tables (see :func:`read_weight_table`)
    :type weight_tables: list of dict
    :param distance_histogram: Use the empirical distance weights
    :type distance_histogram: bool
    :param azimuth_histogram: Use the empirical azimuth weights
    :type azimuth_histogram: bool
    :param external_weights: One weight per window
        (TAKEUCHIKOBAYASHI and FINAL)
    :type external_weights: :class:`numpy.ndarray`
    :param lower_upper_mantle_weights: Weights for lower and upper mantle
        windows (LOWERUPPERMANTLE)
    :type lower_upper_mantle_weights: tuple of float
    :param user_function: ``f(obs_id, syn_id) -> float`` (USERFUNCTION)
    :type user_function: callable
    """
    # pylint: disable=too-many-instance-attributes

    def __init__(self, weighting_type='IDENTITY', reciprocal_waveform='obs',
                 standard_component=None, time_tolerance=10.,
                 component_factors=None, balance_component=False,
                 balance_geometry=False, geometry_radius=2.5,
                 weight_tables=None, distance_histogram=False,
                 azimuth_histogram=False, external_weights=None,
                 lower_upper_mantle_weights=(1., 1.), user_function=None):
        # pylint: disable=too-many-arguments
        if weighting_type not in WEIGHTING_TYPES:
            raise ConfigurationError(
                f'Invalid weighting type: "{weighting_type}"')
        if reciprocal_waveform not in ('obs', 'syn'):
            raise ConfigurationError(
                f'Invalid reciprocal waveform: "{reciprocal_waveform}"')
        weight_tables = weight_tables or []
        if len(weight_tables) > MAX_WEIGHT_TABLES:
            raise ConfigurationError(
                f'At most {MAX_WEIGHT_TABLES} weight tables can be used')
        if (
            weighting_type in ('TAKEUCHIKOBAYASHI', 'FINAL') and
            external_weights is None
        ):
            raise ConfigurationError(
                f'Weighting type "{weighting_type}" requires external weights')
        if weighting_type == 'USERFUNCTION' and not callable(user_function):
            raise ConfigurationError(
                'Weighting type "USERFUNCTION" requires a callable')
        self.weighting_type = weighting_type
        self.reciprocal_waveform = reciprocal_waveform
        self.standard_component = standard_component
        self.time_tolerance = time_tolerance
        self.component_factors = {'Z': 1., 'R': 1., 'T': 1.}
        if component_factors is not None:
            self.component_factors.update(component_factors)
        self.balance_component = balance_component
        self.balance_geometry = balance_geometry
        self.geometry_radius = geometry_radius
        self.weight_tables = list(weight_tables)
        self.distance_histogram = distance_histogram
        self.azimuth_histogram = azimuth_histogram
        self.external_weights = (
            None if external_weights is None
            else np.asarray(external_weights, dtype=float))
        self.lower_upper_mantle_weights = lower_upper_mantle_weights
        self.user_function = user_function

    @classmethod
    def from_config(cls, config):
        """
        Build a weighting handler from the global configuration.

        Weight tables and external weights are read from file.

        :param config: Configuration object
        :type config: :class:`~waveinv.setup.config._Config`
        """
        weight_tables = [
            read_weight_table(filename)
            for filename in config.weight_table_files or []]
        external_weights = None
        if config.weighting_type in ('TAKEUCHIKOBAYASHI', 'FINAL'):
            external_weights = read_external_weights(
                config.external_weight_file)
        return cls(
            weighting_type=config.weighting_type,
            reciprocal_waveform=config.reciprocal_waveform,
            standard_component=config.standard_component,
            time_tolerance=config.reciprocal_time_tolerance,
            component_factors={
                'Z': config.weight_factor_z,
                'R': config.weight_factor_r,
                'T': config.weight_factor_t,
            },
            balance_component=config.balance_component,
            balance_geometry=config.balance_geometry,
            geometry_radius=config.geometry_radius,
            weight_tables=weight_tables,
            distance_histogram=config.distance_histogram,
            azimuth_histogram=config.azimuth_histogram,
            external_weights=external_weights,
            lower_upper_mantle_weights=config.lower_upper_mantle_weights,
        )

    def __str__(self):
        return self.weighting_type

    def compute_weights(self, obs_ids, syn_ids):
        """
        Compute the weight of each observed/synthetic pair.

        The base weight depends on the weighting type. Component factors,
        component and geometry balancing, weight tables and histograms
        then multiply the base weight, whatever the weighting type.

        :param obs_ids: Observed IDs, with data
        :type obs_ids: list of :class:`~waveinv.wvi_waveform_ids.BasicID`
        :param syn_ids: Synthetic IDs, with data, paired with `obs_ids`
        :type syn_ids: list of :class:`~waveinv.wvi_waveform_ids.BasicID`

        :return: One non-negative weight per pair
        :rtype: :class:`numpy.ndarray`
        """
        if len(obs_ids) != len(syn_ids):
            raise DataConsistencyError(
                'Observed and synthetic IDs must have the same length')
        weights = self._base_weights(obs_ids, syn_ids)
        weights *= self._modifiers(obs_ids)
        if np.any(~np.isfinite(weights)) or np.any(weights < 0):
            raise NumericalError(
                f'Invalid weights computed with {self.weighting_type} '
                'weighting')
        return weights

    def _base_weights(self, obs_ids, syn_ids):
        nwin = len(obs_ids)
        wtype = self.weighting_type
        if wtype == 'IDENTITY':
            return np.ones(nwin)
        if wtype == 'RECIPROCAL':
            return self._reciprocal_weights(obs_ids, syn_ids)
        if wtype in ('TAKEUCHIKOBAYASHI', 'FINAL'):
            if self.external_weights.size != nwin:
                raise DataConsistencyError(
                    f'Number of external weights '
                    f'({self.external_weights.size}) differs from the '
                    f'number of timewindows ({nwin})')
            weights = self.external_weights.copy()
            if wtype == 'FINAL':
                weights /= self._peak_amplitudes(obs_ids)
            return weights
        if wtype == 'LOWERUPPERMANTLE':
            lower, upper = self.lower_upper_mantle_weights
            return np.array([
                lower if is_lower_mantle(_id.phases) else upper
                for _id in obs_ids], dtype=float)
        return np.array([
            self.user_function(obs, syn)
            for obs, syn in zip(obs_ids, syn_ids)], dtype=float)

    def _peak_amplitudes(self, ids):
        """Peak amplitude of each window, possibly on a standard component."""
        if self.standard_component is None:
            amplitudes = np.array([np.max(np.abs(_id.data)) for _id in ids])
        else:
            standard = {
                (_id.observer, _id.event, _id.min_period, _id.max_period): _id
                for _id in ids if _id.component == self.standard_component}
            amplitudes = np.zeros(len(ids))
            for n, _id in enumerate(ids):
                key = (_id.observer, _id.event, _id.min_period,
                       _id.max_period)
                try:
                    ref = standard[key]
                except KeyError as err:
                    raise DataConsistencyError(
                        f'{_id}: no {self.standard_component} component '
                        'window to measure the amplitude') from err
                amplitudes[n] = np.max(np.abs(ref.data))
        if np.any(amplitudes == 0):
            raise NumericalError(
                'Zero peak amplitude: cannot compute reciprocal weights')
        return amplitudes

    def _reciprocal_weights(self, obs_ids, syn_ids):
        ids = obs_ids if self.reciprocal_waveform == 'obs' else syn_ids
        weights = 1. / self._peak_amplitudes(ids)
        for n, (obs, syn) in enumerate(zip(obs_ids, syn_ids)):
            if abs(obs.start_time - syn.start_time) > self.time_tolerance:
                logger.warning(
                    f'{obs}: observed and synthetic start times differ by '
                    f'more than {self.time_tolerance} s. Weight set to 0')
                weights[n] = 0.
        return weights

    def _modifiers(self, obs_ids):
        """Product of the optional weight modifiers, for each window."""
        components = np.array([_id.component for _id in obs_ids])
        factors = np.sqrt([
            self.component_factors[comp] for comp in components])
        if self.balance_component:
            factors /= np.sqrt(self._component_ratios(components))
        if self.balance_geometry:
            factors /= np.sqrt(self._geometry_counts(obs_ids))
        for table in self.weight_tables:
            factors *= np.sqrt([self._table_weight(table, _id)
                                for _id in obs_ids])
        if self.distance_histogram:
            factors *= [distance_histogram_weight(_id) for _id in obs_ids]
        if self.azimuth_histogram:
            factors *= [azimuth_histogram_weight(_id) for _id in obs_ids]
        return factors

    @staticmethod
    def _component_ratios(components):
        ntotal = float(len(components))
        ratios = {comp: np.count_nonzero(components == comp) / ntotal
                  for comp in set(components)}
        for comp, ratio in sorted(ratios.items()):
            logger.info(f'Component {comp}: {ratio:.3f} of the timewindows')
        return np.array([ratios[comp] for comp in components])

    def _geometry_counts(self, obs_ids):
        """
        Number of windows with the same component and with event and
        station both within the geometry radius (self included).
        """
        ev_lat = np.array([_id.event.latitude for _id in obs_ids])
        ev_lon = np.array([_id.event.longitude for _id in obs_ids])
        st_lat = np.array([_id.observer.latitude for _id in obs_ids])
        st_lon = np.array([_id.observer.longitude for _id in obs_ids])
        components = np.array([_id.component for _id in obs_ids])
        counts = np.zeros(len(obs_ids))
        for n in range(len(obs_ids)):
            ev_dist = locations2degrees(
                ev_lat[n], ev_lon[n], ev_lat, ev_lon)
            st_dist = locations2degrees(
                st_lat[n], st_lon[n], st_lat, st_lon)
            close = (
                (components == components[n]) &
                (ev_dist < self.geometry_radius) &
                (st_dist < self.geometry_radius)
            )
            # make sure self is counted despite rounding
            close[n] = True
            counts[n] = np.count_nonzero(close)
        return counts

    @staticmethod
    def _table_weight(table, _id):
        try:
            return table[_window_key(_id)]
        except KeyError as err:
            raise DataConsistencyError(
                f'{_id}: no entry in weight table') from err
