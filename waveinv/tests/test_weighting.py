# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""Tests for timewindow weighting."""
from types import SimpleNamespace

import numpy as np
import pytest
from obspy.geodetics import locations2degrees

from waveinv.wvi_errors import (
    ConfigurationError, DataConsistencyError, NumericalError)
from waveinv.wvi_waveform_ids import Event, Observer
from waveinv.wvi_weighting import (
    WeightingHandler,
    azimuth_histogram_weight,
    distance_histogram_weight,
    is_lower_mantle,
    read_weight_table,
)


@pytest.fixture
def pair(make_basic_id, stations, events):
    """Build an observed/synthetic pair with constant data."""
    def _pair(obs_value=2.0, syn_value=4.0, station=0, event=0,
              component='Z', syn_start=100.0, phases=('S',)):
        obs = make_basic_id(
            'OBS', stations[station], events[event],
            np.full(50, obs_value), component=component, phases=phases)
        syn = make_basic_id(
            'SYN', stations[station], events[event],
            np.full(50, syn_value), component=component,
            start_time=syn_start, phases=phases)
        return obs, syn
    return _pair


def _compute(handler, pairs):
    obs_ids = [p[0] for p in pairs]
    syn_ids = [p[1] for p in pairs]
    return handler.compute_weights(obs_ids, syn_ids)


class TestWeightingHandler:
    """Test the weighting types"""

    def test_identity(self, pair):
        weights = _compute(WeightingHandler(), [pair(), pair(station=1)])
        np.testing.assert_array_equal(weights, [1.0, 1.0])

    def test_reciprocal_obs(self, pair):
        handler = WeightingHandler('RECIPROCAL')
        weights = _compute(handler, [pair(obs_value=2.0),
                                     pair(obs_value=-5.0, station=1)])
        np.testing.assert_allclose(weights, [0.5, 0.2])

    def test_reciprocal_syn(self, pair):
        handler = WeightingHandler('RECIPROCAL', reciprocal_waveform='syn')
        weights = _compute(handler, [pair(syn_value=4.0)])
        np.testing.assert_allclose(weights, [0.25])

    def test_component_factor(self, pair):
        handler = WeightingHandler(
            'RECIPROCAL', component_factors={'T': 4.0})
        weights = _compute(
            handler, [pair(obs_value=1.0), pair(obs_value=1.0,
                                                component='T')])
        np.testing.assert_allclose(weights, [1.0, 2.0])

    def test_start_time_mismatch(self, pair, caplog):
        handler = WeightingHandler('RECIPROCAL')
        weights = _compute(
            handler, [pair(), pair(station=1, syn_start=115.0)])
        assert weights[0] == pytest.approx(0.5)
        assert weights[1] == 0.0
        assert 'Weight set to 0' in caplog.text

    def test_zero_amplitude(self, pair):
        handler = WeightingHandler('RECIPROCAL')
        with pytest.raises(NumericalError):
            _compute(handler, [pair(obs_value=0.0)])

    def test_balance_component(self, pair):
        handler = WeightingHandler('RECIPROCAL', balance_component=True)
        weights = _compute(handler, [
            pair(obs_value=1.0, station=0),
            pair(obs_value=1.0, station=1),
            pair(obs_value=1.0, station=0, component='T'),
        ])
        np.testing.assert_allclose(
            weights, [1 / np.sqrt(2 / 3), 1 / np.sqrt(2 / 3), np.sqrt(3)])

    def test_balance_geometry(self, pair):
        handler = WeightingHandler('RECIPROCAL', balance_geometry=True)
        # STA1 and STA2 are less than 2.5 degrees apart, STA3 is far away
        weights = _compute(handler, [
            pair(obs_value=1.0, station=0),
            pair(obs_value=1.0, station=1),
            pair(obs_value=1.0, station=2),
        ])
        np.testing.assert_allclose(
            weights, [1 / np.sqrt(2), 1 / np.sqrt(2), 1.0])

    def test_geometry_radius_is_exclusive(self, pair, stations):
        sta1, sta2 = stations[0], stations[1]
        radius = min(
            locations2degrees(sta1.latitude, sta1.longitude,
                              sta2.latitude, sta2.longitude),
            locations2degrees(sta2.latitude, sta2.longitude,
                              sta1.latitude, sta1.longitude))
        handler = WeightingHandler(
            balance_geometry=True, geometry_radius=radius)
        # STA1 and STA2 are exactly one radius apart: not counted together
        weights = _compute(handler, [
            pair(station=0), pair(station=1)])
        np.testing.assert_allclose(weights, [1.0, 1.0])

    def test_modifiers_with_identity(self, pair):
        handler = WeightingHandler(
            'IDENTITY', balance_component=True,
            component_factors={'T': 4.0})
        weights = _compute(handler, [
            pair(station=0),
            pair(station=1),
            pair(station=0, component='T'),
        ])
        np.testing.assert_allclose(
            weights,
            [1 / np.sqrt(2 / 3), 1 / np.sqrt(2 / 3), 2 * np.sqrt(3)])

    def test_modifiers_with_external_weights(self, pair, tmp_path):
        filename = tmp_path / 'weights.txt'
        filename.write_text(
            '200503211223A STA1 XX 35.0 135.0 Z 4.0\n'
            '200503211223A STA2 XX 36.0 137.0 Z 1.0\n'
        )
        handler = WeightingHandler(
            'TAKEUCHIKOBAYASHI', external_weights=[0.3, 0.7],
            weight_tables=[read_weight_table(str(filename))])
        weights = _compute(handler, [pair(), pair(station=1)])
        np.testing.assert_allclose(weights, [0.6, 0.7])

    def test_standard_component(self, pair):
        handler = WeightingHandler('RECIPROCAL', standard_component='Z')
        weights = _compute(handler, [
            pair(obs_value=2.0),
            pair(obs_value=8.0, component='T'),
        ])
        np.testing.assert_allclose(weights, [0.5, 0.5])

    def test_standard_component_missing(self, pair):
        handler = WeightingHandler('RECIPROCAL', standard_component='Z')
        with pytest.raises(DataConsistencyError):
            _compute(handler, [pair(component='T')])

    def test_weight_table(self, pair, tmp_path):
        filename = tmp_path / 'weights.txt'
        filename.write_text(
            '# event station network lat lon comp weight\n'
            '200503211223A STA1 XX 35.0 135.0 Z 4.0\n'
            '200503211223A STA2 XX 36.00001 137.0 z 9.0\n'
        )
        table = read_weight_table(str(filename))
        handler = WeightingHandler('RECIPROCAL', weight_tables=[table])
        weights = _compute(handler, [
            pair(obs_value=1.0, station=0),
            pair(obs_value=1.0, station=1),
        ])
        np.testing.assert_allclose(weights, [2.0, 3.0])

    def test_weight_table_missing_entry(self, pair):
        handler = WeightingHandler('RECIPROCAL', weight_tables=[{}])
        with pytest.raises(DataConsistencyError):
            _compute(handler, [pair()])

    def test_invalid_weight_table(self, tmp_path):
        filename = tmp_path / 'weights.txt'
        filename.write_text('200503211223A STA1 XX 35.0\n')
        with pytest.raises(ConfigurationError):
            read_weight_table(str(filename))

    def test_too_many_weight_tables(self):
        with pytest.raises(ConfigurationError):
            WeightingHandler('RECIPROCAL', weight_tables=[{}] * 6)

    def test_takeuchi_kobayashi(self, pair):
        handler = WeightingHandler(
            'TAKEUCHIKOBAYASHI', external_weights=[0.3, 0.7])
        weights = _compute(handler, [pair(), pair(station=1)])
        np.testing.assert_allclose(weights, [0.3, 0.7])

    def test_final(self, pair):
        handler = WeightingHandler('FINAL', external_weights=[1.0, 3.0])
        weights = _compute(
            handler, [pair(obs_value=2.0), pair(obs_value=3.0, station=1)])
        np.testing.assert_allclose(weights, [0.5, 1.0])

    def test_external_weights_count_mismatch(self, pair):
        handler = WeightingHandler(
            'TAKEUCHIKOBAYASHI', external_weights=[0.3])
        with pytest.raises(DataConsistencyError):
            _compute(handler, [pair(), pair(station=1)])

    def test_external_weights_required(self):
        with pytest.raises(ConfigurationError):
            WeightingHandler('FINAL')

    def test_lower_upper_mantle(self, pair):
        handler = WeightingHandler(
            'LOWERUPPERMANTLE', lower_upper_mantle_weights=(2.0, 0.5))
        weights = _compute(handler, [
            pair(phases=('ScS',)),
            pair(station=1, phases=('S',)),
        ])
        np.testing.assert_allclose(weights, [2.0, 0.5])

    def test_user_function(self, pair):
        def _weight(obs, syn):
            return 3.0 if obs.observer.station == 'STA1' else 1.0
        handler = WeightingHandler('USERFUNCTION', user_function=_weight)
        weights = _compute(handler, [pair(), pair(station=1)])
        np.testing.assert_allclose(weights, [3.0, 1.0])

    def test_negative_user_weight(self, pair):
        handler = WeightingHandler(
            'USERFUNCTION', user_function=lambda obs, syn: -1.0)
        with pytest.raises(NumericalError):
            _compute(handler, [pair()])

    def test_invalid_type(self):
        with pytest.raises(ConfigurationError):
            WeightingHandler('UNIFORM')

    def test_length_mismatch(self, pair):
        obs, syn = pair()
        with pytest.raises(DataConsistencyError):
            WeightingHandler().compute_weights([obs], [syn, syn])

    def test_from_config(self):
        config = SimpleNamespace(
            weighting_type='RECIPROCAL',
            reciprocal_waveform='syn',
            standard_component=None,
            reciprocal_time_tolerance=5.0,
            weight_factor_z=1.0,
            weight_factor_r=1.0,
            weight_factor_t=2.0,
            balance_component=True,
            balance_geometry=False,
            geometry_radius=2.5,
            weight_table_files=None,
            external_weight_file=None,
            distance_histogram=False,
            azimuth_histogram=False,
            lower_upper_mantle_weights=(1.0, 1.0),
        )
        handler = WeightingHandler.from_config(config)
        assert str(handler) == 'RECIPROCAL'
        assert handler.reciprocal_waveform == 'syn'
        assert handler.time_tolerance == 5.0
        assert handler.component_factors['T'] == 2.0
        assert handler.balance_component


class TestHistograms:
    """Test empirical distance and azimuth weights"""

    def test_lower_mantle_phases(self):
        assert is_lower_mantle(['ScS'])
        assert is_lower_mantle(['SKS'])
        assert is_lower_mantle(['S', 'Sdiff'])
        assert not is_lower_mantle(['S', 'sS'])
        assert not is_lower_mantle([])

    @staticmethod
    def _obs_id(make_basic_id, latitude, longitude):
        return make_basic_id(
            'OBS', Observer('STA', 'NET', latitude, longitude),
            Event('200503211223A', 0.0, 0.0))

    def test_distance_histogram(self, make_basic_id):
        _id = self._obs_id(make_basic_id, 0.0, 72.0)
        assert distance_histogram_weight(_id) == 0.741
        _id = self._obs_id(make_basic_id, 0.0, 30.0)
        assert distance_histogram_weight(_id) == 1.0

    def test_azimuth_histogram(self, make_basic_id):
        # azimuth is about 321.7 degrees
        _id = self._obs_id(make_basic_id, 10.0, -8.0)
        assert azimuth_histogram_weight(_id) == 0.426
        # azimuth is about 90 degrees
        _id = self._obs_id(make_basic_id, 0.0, 30.0)
        assert azimuth_histogram_weight(_id) == 1.0
