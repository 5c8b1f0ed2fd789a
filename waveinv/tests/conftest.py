# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Shared fixtures for waveinv tests.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import numpy as np
import pytest

from waveinv.wvi_waveform_ids import Observer, Event, BasicID, PartialID
from waveinv.wvi_unknowns import UnknownParameter

STATIONS = (
    Observer('STA1', 'XX', 35.0, 135.0),
    Observer('STA2', 'XX', 36.0, 137.0),
    Observer('STA3', 'YY', 40.0, 140.0),
)
EVENTS = (
    Event('200503211223A', -5.0, 120.0, 600.0),
    Event('201001010000A', 10.0, 125.0, 300.0),
)
NPTS = 50
START_TIME = 100.0


def _basic_id(kind, observer, event, data=None, component='Z',
              start_time=START_TIME, npts=NPTS, sampling_hz=1.0,
              min_period=5.0, max_period=100.0, phases=('S',)):
    if data is None:
        data = np.ones(npts)
    return BasicID(
        kind, sampling_hz, start_time, npts, observer, event, component,
        min_period, max_period, phases, data=data)


def _partial_id(observer, event, unknown, data, component='Z',
                start_time=START_TIME, npts=None):
    if unknown.parameter_type == 'LAYER':
        voxel = (0.0, 0.0, unknown.position)
    elif unknown.parameter_type == 'VOXEL':
        voxel = unknown.position
    else:
        voxel = (0.0, 0.0, 0.0)
    data = np.asarray(data, dtype=float)
    return PartialID(
        1.0, start_time, npts or data.size, observer, event, component,
        unknown.partial_type, voxel, 5.0, 100.0, data=data)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def stations():
    return STATIONS


@pytest.fixture
def events():
    return EVENTS


@pytest.fixture
def make_basic_id():
    """Factory for BasicID objects, with data."""
    return _basic_id


@pytest.fixture
def make_partial_id():
    """Factory for PartialID objects matching an unknown parameter."""
    return _partial_id


@pytest.fixture
def unknowns():
    """Two layers and one voxel."""
    return (
        UnknownParameter('LAYER', 'MU', 5700.0, 1.0),
        UnknownParameter('LAYER', 'MU', 5800.0, 1.0),
        UnknownParameter('VOXEL', 'MU', (10.0, 20.0, 6000.0), 1.0),
    )


@pytest.fixture
def scenario(rng, unknowns):
    """
    3 stations x 2 events, Z component.

    Observed waveforms are built as syn + A m_true + small noise,
    so that the least squares solution is close to m_true.
    """
    m_true = np.array([0.5, -0.3, 0.2])
    basic_ids = []
    partial_ids = []
    blocks = []
    for event in EVENTS:
        for observer in STATIONS:
            syn = rng.standard_normal(NPTS)
            block = rng.standard_normal((NPTS, len(unknowns)))
            obs = syn + block @ m_true + 0.01 * rng.standard_normal(NPTS)
            basic_ids.append(_basic_id('OBS', observer, event, obs))
            basic_ids.append(_basic_id('SYN', observer, event, syn))
            for j, unknown in enumerate(unknowns):
                partial_ids.append(
                    _partial_id(observer, event, unknown, block[:, j]))
            blocks.append(block)
    return {
        'basic_ids': basic_ids,
        'partial_ids': partial_ids,
        'unknowns': unknowns,
        'm_true': m_true,
        'a_matrix': np.vstack(blocks),
    }


@pytest.fixture
def normal_equations(scenario):
    """AtA, Atd and data info for the identity-weighted scenario."""
    # pylint: disable=import-outside-toplevel
    from waveinv.wvi_dvector import Dvector
    from waveinv.wvi_matrix_assembly import MatrixAssembly
    dvector = Dvector(scenario['basic_ids'])
    assembly = MatrixAssembly(
        dvector, scenario['partial_ids'], scenario['unknowns'])
    ata, atd = assembly.compute()
    return {
        'dvector': dvector,
        'assembly': assembly,
        'ata': ata,
        'atd': atd,
        'data_info': assembly.data_info,
    }
