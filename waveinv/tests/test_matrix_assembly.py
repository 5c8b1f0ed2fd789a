# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""Tests for the assembly of the normal equations."""
import numpy as np
import pytest

from waveinv.wvi_dvector import Dvector
from waveinv.wvi_errors import DataConsistencyError, NumericalError
from waveinv.wvi_matrix_assembly import (
    DataInfo,
    MatrixAssembly,
    read_normal_equations,
    sum_normal_equations,
    write_normal_equations,
)
from waveinv.wvi_unknowns import UnknownParameter


class TestMatrixAssembly:
    """Test AtA and Atd"""

    def test_ata_atd(self, scenario, normal_equations):
        a_matrix = scenario['a_matrix']
        d_vector = normal_equations['dvector'].full_d_vector
        np.testing.assert_allclose(
            normal_equations['ata'], a_matrix.T @ a_matrix)
        np.testing.assert_allclose(
            normal_equations['atd'], a_matrix.T @ d_vector)

    def test_ata_is_symmetric_positive(self, normal_equations):
        ata = normal_equations['ata']
        np.testing.assert_array_equal(ata, ata.T)
        assert np.all(np.linalg.eigvalsh(ata) >= -1e-10)

    def test_a_matrix(self, scenario, normal_equations):
        np.testing.assert_allclose(
            normal_equations['assembly'].a_matrix(), scenario['a_matrix'])

    def test_low_memory(self, scenario, normal_equations):
        assembly = MatrixAssembly(
            normal_equations['dvector'], scenario['partial_ids'],
            scenario['unknowns'], low_memory=True, chunk_size=4)
        ata, atd = assembly.compute()
        np.testing.assert_allclose(ata, normal_equations['ata'])
        np.testing.assert_allclose(atd, normal_equations['atd'])
        # 6 timewindows in chunks of 4
        assert len(list(assembly._partial_sums(True))) == 2

    def test_full_a_is_never_stacked(self, monkeypatch, scenario,
                                     normal_equations):
        assembly = MatrixAssembly(
            normal_equations['dvector'], scenario['partial_ids'],
            scenario['unknowns'])
        block_rows = []
        window_block = assembly._window_block

        def _recording_block(n):
            block = window_block(n)
            block_rows.append(block.shape[0])
            return block

        def _no_vstack(*args, **kwargs):
            raise AssertionError('A must not be stacked')

        monkeypatch.setattr(assembly, '_window_block', _recording_block)
        monkeypatch.setattr(np, 'vstack', _no_vstack)
        ata, atd = assembly.compute()
        np.testing.assert_allclose(ata, normal_equations['ata'])
        np.testing.assert_allclose(atd, normal_equations['atd'])
        # one 50-point block per timewindow
        assert block_rows == [50] * 6

    def test_reuse_ata(self, scenario, normal_equations):
        assembly = MatrixAssembly(
            normal_equations['dvector'], scenario['partial_ids'],
            scenario['unknowns'])
        reuse = np.eye(3)
        ata, atd = assembly.compute(reuse_ata=reuse)
        np.testing.assert_array_equal(ata, reuse)
        np.testing.assert_allclose(atd, normal_equations['atd'])
        with pytest.raises(DataConsistencyError):
            assembly.compute(reuse_ata=np.eye(2))

    def test_unknown_weighting(self, scenario, normal_equations):
        unknowns = list(scenario['unknowns'])
        unknowns[0] = UnknownParameter('LAYER', 'MU', 5700.0, 2.0)
        assembly = MatrixAssembly(
            normal_equations['dvector'], scenario['partial_ids'], unknowns)
        ata, atd = assembly.compute()
        assert ata[0, 0] == pytest.approx(4 * normal_equations['ata'][0, 0])
        assert ata[1, 1] == pytest.approx(normal_equations['ata'][1, 1])
        assert atd[0] == pytest.approx(2 * normal_equations['atd'][0])

    def test_weights_are_applied(self, scenario):
        dvector = Dvector(scenario['basic_ids'])
        assembly = MatrixAssembly(
            dvector, scenario['partial_ids'], scenario['unknowns'])
        ata, _ = assembly.compute()
        # doubling all the partials multiplies AtA by 4
        doubled = [
            pid.with_data(pid.data * 2) for pid in scenario['partial_ids']]
        ata2, _ = MatrixAssembly(
            dvector, doubled, scenario['unknowns']).compute()
        np.testing.assert_allclose(ata2, 4 * ata)

    def test_missing_partial(self, scenario, normal_equations):
        partial_ids = scenario['partial_ids'][1:]
        assembly = MatrixAssembly(
            normal_equations['dvector'], partial_ids, scenario['unknowns'])
        with pytest.raises(DataConsistencyError,
                           match='Input partials are not enough'):
            assembly.compute()

    def test_fill_empty_partial(self, scenario, normal_equations):
        # remove all the partials of the first unknown
        partial_ids = [
            pid for n, pid in enumerate(scenario['partial_ids'])
            if n % 3 != 0]
        assembly = MatrixAssembly(
            normal_equations['dvector'], partial_ids, scenario['unknowns'],
            fill_empty_partial=True)
        ata, atd = assembly.compute()
        np.testing.assert_array_equal(ata[0], 0.0)
        assert atd[0] == 0.0
        assert ata[1, 1] == pytest.approx(normal_equations['ata'][1, 1])

    def test_duplicate_partial(self, scenario, normal_equations):
        partial_ids = scenario['partial_ids'] + [scenario['partial_ids'][0]]
        with pytest.raises(DataConsistencyError,
                           match='Duplicate partial detected'):
            MatrixAssembly(
                normal_equations['dvector'], partial_ids,
                scenario['unknowns'])

    def test_unused_partials_are_skipped(self, scenario, normal_equations,
                                         make_partial_id, stations, events):
        extra = make_partial_id(
            stations[0], events[0],
            UnknownParameter('LAYER', 'MU', 3000.0), np.ones(50))
        assembly = MatrixAssembly(
            normal_equations['dvector'], scenario['partial_ids'] + [extra],
            scenario['unknowns'])
        ata, _ = assembly.compute()
        np.testing.assert_allclose(ata, normal_equations['ata'])

    def test_nan_partial(self, scenario, normal_equations):
        partial_ids = list(scenario['partial_ids'])
        data = partial_ids[4].data.copy()
        data[10] = np.nan
        partial_ids[4] = partial_ids[4].with_data(data)
        assembly = MatrixAssembly(
            normal_equations['dvector'], partial_ids, scenario['unknowns'])
        with pytest.raises(NumericalError):
            assembly.compute()

    def test_data_info(self, normal_equations):
        dvector = normal_equations['dvector']
        dinfo = normal_equations['data_info']
        assert dinfo.num_independent == pytest.approx(60.0)
        assert dinfo.d_norm == pytest.approx(dvector.d_norm)
        assert dinfo.variance == pytest.approx(dvector.variance)


class TestNormalEquations:
    """Test summing, writing and reading normal equations"""

    def test_data_info_sum(self):
        dinfo = DataInfo(10, 3.0, 5.0) + DataInfo(20, 4.0, 12.0)
        assert dinfo.num_independent == 30.0
        assert dinfo.d_norm == pytest.approx(5.0)
        assert dinfo.obs_norm == pytest.approx(13.0)

    def test_sum_normal_equations(self):
        dataset1 = (np.eye(2), np.array([1.0, 2.0]), DataInfo(1, 1.0, 1.0))
        dataset2 = (2 * np.eye(2), np.array([3.0, 4.0]),
                    DataInfo(2, 1.0, 1.0))
        ata, atd, dinfo = sum_normal_equations([dataset1, dataset2])
        np.testing.assert_array_equal(ata, 3 * np.eye(2))
        np.testing.assert_array_equal(atd, [4.0, 6.0])
        assert dinfo.num_independent == 3.0
        # inputs are not modified
        np.testing.assert_array_equal(dataset1[0], np.eye(2))

    def test_sum_different_sizes(self):
        dataset1 = (np.eye(2), np.zeros(2), DataInfo(1, 1.0, 1.0))
        dataset2 = (np.eye(3), np.zeros(3), DataInfo(1, 1.0, 1.0))
        with pytest.raises(DataConsistencyError):
            sum_normal_equations([dataset1, dataset2])

    def test_write_read(self, tmp_path, normal_equations):
        outdir = str(tmp_path)
        write_normal_equations(
            outdir, normal_equations['ata'], normal_equations['atd'],
            normal_equations['data_info'])
        ata, atd, dinfo = read_normal_equations(outdir)
        np.testing.assert_allclose(ata, normal_equations['ata'])
        np.testing.assert_allclose(atd, normal_equations['atd'])
        assert dinfo.obs_norm == pytest.approx(
            normal_equations['data_info'].obs_norm)

    def test_inconsistent_files(self, tmp_path):
        outdir = str(tmp_path)
        write_normal_equations(
            outdir, np.eye(3), np.zeros(2), DataInfo(1, 1.0, 1.0))
        with pytest.raises(DataConsistencyError):
            read_normal_equations(outdir)
