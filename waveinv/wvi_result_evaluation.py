# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Evaluation of inversion results: normalized variance and AIC.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import math
import logging
import numpy as np
from .wvi_errors import NumericalError
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

VARIANCE_FILE = 'variance.txt'


def compute_aic(variance, n, k):
    """
    Akaike Information Criterion for a Gaussian misfit.

    :param variance: Normalized variance
    :type variance: float
    :param n: Number of independent data
    :type n: int
    :param k: Number of model parameters
    :type k: int

    :return: AIC value
    :rtype: float
    """
    if not variance > 0:
        raise NumericalError(
            f'Cannot compute AIC for non-positive variance ({variance})')
    return n * (math.log(2 * math.pi) + math.log(variance) + 1) + 2 * k + 2


class ResultEvaluation():
    """
    Evaluate the solutions of an inverse problem.

    :param ata: AtA matrix
    :type ata: :class:`numpy.ndarray`
    :param atd: Atd vector
    :type atd: :class:`numpy.ndarray`
    :param data_info: Data information (independent data and norms)
    :type data_info: :class:`~waveinv.wvi_matrix_assembly.DataInfo`
    """
    def __init__(self, ata, atd, data_info):
        self.ata = np.asarray(ata, dtype=float)
        self.atd = np.asarray(atd, dtype=float)
        self.data_info = data_info
        if data_info.obs_norm <= 0:
            raise NumericalError('Observed norm must be positive')

    def variance(self, m):
        """
        Normalized variance |Am - d|^2/|obs|^2 of a model.

        It is computed from the normal equations as
        (|d|^2 - 2 Atd.m + m.AtA.m)/|obs|^2.
        """
        m = np.asarray(m, dtype=float)
        d_norm2 = self.data_info.d_norm**2
        misfit = d_norm2 - 2 * self.atd @ m + m @ self.ata @ m
        return misfit / self.data_info.obs_norm**2

    def variances(self, inverse_problem, evaluate_num):
        """
        Normalized variances of the solutions of order 0 to evaluate_num.

        :param inverse_problem: A computed inverse problem
        :type inverse_problem: :class:`~waveinv.wvi_solvers.InverseProblem`
        :param evaluate_num: Maximum order
        :type evaluate_num: int

        :return: Variances, starting with the initial model
        :rtype: :class:`numpy.ndarray`
        """
        max_order = min(evaluate_num, inverse_problem.n_solutions)
        return np.array([
            self.variance(inverse_problem.answer(order))
            for order in range(max_order + 1)])

    def aics(self, variances, alpha):
        """
        AIC of each solution, for a redundancy parameter alpha.

        :param variances: Normalized variances, starting with order 0
        :type variances: :class:`numpy.ndarray`
        :param alpha: Redundancy parameter
        :type alpha: float

        :return: AIC values
        :rtype: :class:`numpy.ndarray`
        """
        n = int(self.data_info.num_independent / alpha)
        return np.array([
            compute_aic(var, n, k) for k, var in enumerate(variances)])

    def evaluate(self, inverse_problem, alphas, evaluate_num):
        """
        Variances and AIC values of the solutions of an inverse problem.

        Nothing is written to disk.

        :param inverse_problem: A computed inverse problem
        :type inverse_problem: :class:`~waveinv.wvi_solvers.InverseProblem`
        :param alphas: Redundancy parameters
        :type alphas: list of float
        :param evaluate_num: Maximum order
        :type evaluate_num: int

        :return: variances and AIC values (dict keyed by alpha)
        :rtype: tuple
        """
        variances = self.variances(inverse_problem, evaluate_num)
        aics = {}
        for alpha in alphas:
            aics[alpha] = self.aics(variances, alpha)
            best = int(np.argmin(aics[alpha]))
            logger.info(
                f'{inverse_problem.name}: minimum AIC for alpha={alpha:g} '
                f'at order {best}')
        logger.info(
            f'{inverse_problem.name}: variance {variances[0]:.6f} -> '
            f'{variances[-1]:.6f} (order {len(variances) - 1})')
        return variances, aics

    @staticmethod
    def write(outdir, variances, aics):
        """
        Write variance.txt and aic_<alpha>.txt files.

        Each line of variance.txt is ``order variance variance(%)``.
        Each line of aic_<alpha>.txt is ``order aic aic/aic0``.
        """
        os.makedirs(outdir, exist_ok=True)
        with open(os.path.join(outdir, VARIANCE_FILE), 'w',
                  encoding='utf-8') as fp:
            for order, var in enumerate(variances):
                fp.write(f'{order} {var} {var * 100}\n')
        for alpha, aic in aics.items():
            filename = os.path.join(outdir, f'aic_{alpha:g}.txt')
            with open(filename, 'w', encoding='utf-8') as fp:
                for order, val in enumerate(aic):
                    fp.write(f'{order} {val} {val / aic[0]}\n')

    def output(self, inverse_problem, outdir, alphas, evaluate_num):
        """
        Evaluate the solutions of an inverse problem and write the results
        to outdir (see :meth:`evaluate` and :meth:`write`).
        """
        variances, aics = self.evaluate(inverse_problem, alphas, evaluate_num)
        self.write(outdir, variances, aics)
        return variances, aics
