# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""Tests for waveform IDs and their binary files."""
import numpy as np
import pytest

from waveinv.wvi_errors import DataConsistencyError
from waveinv.wvi_waveform_ids import (
    BasicID,
    Event,
    Observer,
    is_pair,
    read_basic_ids,
    read_partial_ids,
    write_basic_ids,
    write_partial_ids,
)


class TestValueClasses:
    """Test observers and events"""

    def test_observer_equality(self):
        obs1 = Observer('STA1', 'XX', 35.0, 135.0)
        obs2 = Observer('STA1', 'XX', 35.5, 135.0)
        assert obs1 == obs2
        assert str(obs1) == 'STA1_XX'
        assert obs1 != Observer('STA1', 'YY', 35.0, 135.0)

    def test_event_equality(self):
        assert Event('200503211223A', 0, 0) == Event('200503211223A', 1, 1)
        assert str(Event('200503211223A', 0, 0)) == '200503211223A'


class TestBasicID:
    """Test BasicID"""

    def test_rounding(self, stations, events):
        _id = BasicID('OBS', 20.0000001, 12.3456789, 10,
                      stations[0], events[0], 'T')
        assert _id.sampling_hz == 20.0
        assert _id.start_time == 12.346

    def test_with_data(self, make_basic_id, stations, events):
        _id = make_basic_id('OBS', stations[0], events[0])
        new = _id.with_data(np.arange(50.0))
        assert new == _id
        assert new.data[3] == 3.0
        with pytest.raises(ValueError):
            new.data[0] = 1.0

    def test_with_data_wrong_length(self, make_basic_id, stations, events):
        _id = make_basic_id('OBS', stations[0], events[0])
        with pytest.raises(DataConsistencyError):
            _id.with_data(np.zeros(10))

    def test_identity_ignores_phases(self, make_basic_id, stations, events):
        id1 = make_basic_id('OBS', stations[0], events[0], phases=('S',))
        id2 = make_basic_id('OBS', stations[0], events[0], phases=('ScS',))
        assert id1 == id2
        assert len({id1, id2}) == 1

    def test_kind_is_part_of_identity(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0])
        syn = make_basic_id('SYN', stations[0], events[0])
        assert obs != syn

    def test_invalid_values(self, stations, events):
        with pytest.raises(ValueError):
            BasicID('XXX', 1.0, 0.0, 10, stations[0], events[0], 'Z')
        with pytest.raises(ValueError):
            BasicID('OBS', 1.0, 0.0, 10, stations[0], events[0], 'E')


class TestIsPair:
    """Test observed/synthetic pairing"""

    def test_pair(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0])
        syn = make_basic_id('SYN', stations[0], events[0])
        assert is_pair(obs, syn)
        assert is_pair(syn, obs)

    @pytest.mark.parametrize('kwargs', [
        {'component': 'T'},
        {'npts': 40},
        {'sampling_hz': 20.0},
        {'min_period': 8.0},
        {'max_period': 200.0},
    ])
    def test_metadata_mismatch(self, make_basic_id, stations, events,
                               kwargs):
        obs = make_basic_id('OBS', stations[0], events[0])
        if 'npts' in kwargs:
            kwargs['data'] = np.ones(kwargs['npts'])
        syn = make_basic_id('SYN', stations[0], events[0], **kwargs)
        assert not is_pair(obs, syn)

    def test_different_station_or_event(self, make_basic_id, stations,
                                        events):
        obs = make_basic_id('OBS', stations[0], events[0])
        assert not is_pair(obs, make_basic_id('SYN', stations[1], events[0]))
        assert not is_pair(obs, make_basic_id('SYN', stations[0], events[1]))

    def test_time_tolerance(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0], start_time=100.0)
        syn_close = make_basic_id(
            'SYN', stations[0], events[0], start_time=115.0)
        syn_far = make_basic_id(
            'SYN', stations[0], events[0], start_time=125.0)
        assert is_pair(obs, syn_close)
        assert not is_pair(obs, syn_far)
        assert is_pair(obs, syn_far, time_tolerance=30.0)

    def test_period_tolerance(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0], min_period=5.0)
        syn = make_basic_id('SYN', stations[0], events[0], min_period=5.05)
        assert is_pair(obs, syn)

    def test_unfiltered_records(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0],
                            min_period=0.0, max_period=np.inf)
        syn = make_basic_id('SYN', stations[0], events[0],
                            min_period=0.0, max_period=np.inf)
        assert is_pair(obs, syn)

    def test_phases(self, make_basic_id, stations, events):
        obs = make_basic_id('OBS', stations[0], events[0],
                            phases=('S', 'ScS'))
        syn_same = make_basic_id('SYN', stations[0], events[0],
                                 phases=('ScS', 'S'))
        syn_other = make_basic_id('SYN', stations[0], events[0],
                                  phases=('S',))
        syn_none = make_basic_id('SYN', stations[0], events[0], phases=())
        assert is_pair(obs, syn_same)
        assert not is_pair(obs, syn_other)
        assert not is_pair(obs, syn_none)


class TestBinaryFiles:
    """Test binary ID and data files"""

    def test_basic_ids(self, tmp_path, scenario):
        id_file = str(tmp_path / 'id.dat')
        data_file = str(tmp_path / 'data.dat')
        ids = scenario['basic_ids']
        write_basic_ids(ids, id_file, data_file)
        read_ids = read_basic_ids(id_file, data_file)
        assert read_ids == ids
        for _id, read_id in zip(ids, read_ids):
            assert read_id.kind == _id.kind
            assert read_id.phases == _id.phases
            assert read_id.observer.latitude == _id.observer.latitude
            assert read_id.event.depth == _id.event.depth
            assert np.array_equal(read_id.data, _id.data)

    def test_basic_ids_without_data(self, tmp_path, scenario):
        id_file = str(tmp_path / 'id.dat')
        write_basic_ids(scenario['basic_ids'], id_file)
        read_ids = read_basic_ids(id_file)
        assert all(not _id.contains_data for _id in read_ids)
        assert read_ids[1].start_byte == 50 * 8

    def test_partial_ids(self, tmp_path, scenario):
        id_file = str(tmp_path / 'partial_id.dat')
        data_file = str(tmp_path / 'partial.dat')
        ids = scenario['partial_ids']
        write_partial_ids(ids, id_file, data_file)
        read_ids = read_partial_ids(id_file, data_file)
        assert read_ids == ids
        assert read_ids[2].partial_type == 'MU3D'
        assert read_ids[2].voxel_position == (10.0, 20.0, 6000.0)
        assert np.array_equal(read_ids[5].data, ids[5].data)

    def test_truncated_data_file(self, tmp_path, scenario):
        id_file = str(tmp_path / 'id.dat')
        data_file = tmp_path / 'data.dat'
        write_basic_ids(scenario['basic_ids'], id_file, str(data_file))
        data_file.write_bytes(data_file.read_bytes()[:-8])
        with pytest.raises(DataConsistencyError):
            read_basic_ids(id_file, str(data_file))

    def test_too_many_phases(self, tmp_path, make_basic_id, stations,
                             events):
        _id = make_basic_id('OBS', stations[0], events[0],
                            phases=[f'P{n}' for n in range(11)])
        with pytest.raises(DataConsistencyError):
            write_basic_ids([_id], str(tmp_path / 'id.dat'))
