# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""Tests for the evaluation of inversion results."""
import math

import numpy as np
import pytest

from waveinv.wvi_errors import NumericalError
from waveinv.wvi_matrix_assembly import DataInfo
from waveinv.wvi_result_evaluation import ResultEvaluation, compute_aic
from waveinv.wvi_solvers import (
    ConjugateGradientMethod, SingularValueDecomposition)


@pytest.fixture
def evaluation(normal_equations):
    return ResultEvaluation(
        normal_equations['ata'], normal_equations['atd'],
        normal_equations['data_info'])


@pytest.fixture
def cg_problem(normal_equations):
    problem = ConjugateGradientMethod(
        normal_equations['ata'], normal_equations['atd'])
    problem.compute()
    return problem


class TestVariance:
    """Test the normalized variance of a model"""

    def test_initial_model(self, evaluation, normal_equations):
        assert evaluation.variance(np.zeros(3)) == pytest.approx(
            normal_equations['dvector'].variance)

    def test_any_model(self, evaluation, scenario, normal_equations):
        dvector = normal_equations['dvector']
        a_matrix = scenario['a_matrix']
        d_vector = dvector.full_d_vector
        m = np.array([0.1, 0.2, -0.4])
        residual = a_matrix @ m - d_vector
        expected = residual @ residual / dvector.obs_norm**2
        assert evaluation.variance(m) == pytest.approx(expected)

    def test_variances(self, evaluation, cg_problem, normal_equations):
        variances = evaluation.variances(cg_problem, evaluate_num=100)
        assert variances.size == 4
        assert variances[0] == pytest.approx(
            normal_equations['dvector'].variance)
        assert all(np.diff(variances) <= 1e-12)
        # only noise remains after the inversion
        assert variances[-1] < 0.01 * variances[0]

    def test_evaluate_num(self, evaluation, cg_problem):
        variances = evaluation.variances(cg_problem, evaluate_num=2)
        assert variances.size == 3

    def test_zero_obs_norm(self):
        with pytest.raises(NumericalError):
            ResultEvaluation(np.eye(2), np.zeros(2), DataInfo(10, 1.0, 0.0))


class TestAIC:
    """Test the Akaike Information Criterion"""

    def test_compute_aic(self):
        aic = compute_aic(0.5, 100, 3)
        expected = 100 * (math.log(2 * math.pi) + math.log(0.5) + 1) + 8
        assert aic == pytest.approx(expected)

    @pytest.mark.parametrize('variance', [0.0, -0.1])
    def test_non_positive_variance(self, variance):
        with pytest.raises(NumericalError):
            compute_aic(variance, 100, 3)

    def test_aics(self, evaluation):
        # num_independent is 60: n = 6 for alpha = 10
        aics = evaluation.aics(np.array([1.0, 0.5]), 10.0)
        assert aics[0] == pytest.approx(compute_aic(1.0, 6, 0))
        assert aics[1] == pytest.approx(compute_aic(0.5, 6, 1))

    def test_aic_decreases_with_alpha(self, evaluation):
        # log(2 pi) + log(0.5) + 1 > 0: fewer independent data, lower AIC
        alphas = [1.0, 2.0, 10.0, 100.0]
        aics = [evaluation.aics(np.array([0.5]), alpha)[0]
                for alpha in alphas]
        assert all(np.diff(aics) < 0)
        # only the parameter term is left when n is 0
        assert aics[-1] == pytest.approx(2.0)

    def test_best_order_decreases_with_alpha(self, evaluation, cg_problem):
        variances = evaluation.variances(cg_problem, evaluate_num=100)
        alphas = [1.0, 10.0, 30.0, 100.0]
        best = [int(np.argmin(evaluation.aics(variances, alpha)))
                for alpha in alphas]
        assert all(np.diff(best) <= 0)
        assert best[0] == 3
        assert best[-1] == 0

    def test_evaluate_writes_nothing(self, tmp_path, monkeypatch,
                                     evaluation, cg_problem):
        monkeypatch.chdir(tmp_path)
        variances, aics = evaluation.evaluate(
            cg_problem, [1.0, 100.0], evaluate_num=100)
        assert variances.size == 4
        assert set(aics) == {1.0, 100.0}
        assert not list(tmp_path.iterdir())


class TestOutput:
    """Test evaluation output files"""

    def test_output_files(self, tmp_path, evaluation, cg_problem):
        variances, aics = evaluation.output(
            cg_problem, str(tmp_path), [1.0, 100.0], evaluate_num=10)
        assert set(aics) == {1.0, 100.0}
        assert (tmp_path / 'aic_1.txt').exists()
        assert (tmp_path / 'aic_100.txt').exists()
        lines = (tmp_path / 'variance.txt').read_text().splitlines()
        assert len(lines) == 4
        order, var, percent = lines[0].split()
        assert order == '0'
        assert float(var) == pytest.approx(variances[0])
        assert float(percent) == pytest.approx(100 * variances[0])
        aic_lines = (tmp_path / 'aic_1.txt').read_text().splitlines()
        assert float(aic_lines[0].split()[2]) == pytest.approx(1.0)

    def test_output_svd(self, tmp_path, evaluation, normal_equations):
        problem = SingularValueDecomposition(
            normal_equations['ata'], normal_equations['atd'])
        problem.compute()
        variances, _ = evaluation.output(
            problem, str(tmp_path / 'SVD'), [1.0], evaluate_num=100)
        assert variances.size == 4
        assert (tmp_path / 'SVD' / 'variance.txt').exists()
