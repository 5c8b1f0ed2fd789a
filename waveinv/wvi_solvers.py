# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Solvers for the normal equations AtA m = Atd.

Each solver produces an ensemble of solutions: column i of the answer
matrix is the solution obtained with the first i+1 basis vectors
(or iterations, or damping parameters for least squares).

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import logging
import numpy as np
from scipy.sparse.linalg import bicgstab
from .wvi_errors import (
    ConfigurationError, DataConsistencyError, NumericalError)
from .wvi_unknowns import write_known_parameters
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

EIGENVALUE_FILE = 'eigenvaluesOfAta.txt'


def _check_normal_equations(ata, atd):
    ata = np.asarray(ata, dtype=float)
    atd = np.asarray(atd, dtype=float)
    if ata.ndim != 2 or ata.shape[0] != ata.shape[1]:
        raise DataConsistencyError('AtA must be a square matrix')
    if atd.shape != (ata.shape[0],):
        raise DataConsistencyError(
            f'Atd length ({atd.size}) does not match AtA size '
            f'({ata.shape[0]})')
    return ata, atd


class InverseProblem():
    """
    Base class for inverse problem solvers.

    Subclasses implement :meth:`compute`, which fills :attr:`ans`,
    an (n, N) matrix of solutions.

    :param ata: AtA matrix
    :type ata: :class:`numpy.ndarray`
    :param atd: Atd vector
    :type atd: :class:`numpy.ndarray`
    """
    name = None
    matrix_free = False

    def __init__(self, ata, atd):
        self.ata, self.atd = _check_normal_equations(ata, atd)
        self._ans = None

    @property
    def n_unknowns(self):
        return self.atd.size

    @property
    def ans(self):
        """Solution ensemble (read-only)."""
        if self._ans is None:
            raise RuntimeError(f'{self.name}: compute() has not been run')
        return self._ans

    def _set_ans(self, ans):
        ans.flags.writeable = False
        self._ans = ans

    @property
    def n_solutions(self):
        return self.ans.shape[1]

    def compute(self):
        """Compute the solution ensemble."""
        raise NotImplementedError

    def answer(self, order):
        """
        Return the solution of a given order.

        :param order: Order of the solution (0 is the initial, zero model)
        :type order: int

        :return: Model vector
        :rtype: :class:`numpy.ndarray`
        """
        if order == 0:
            return np.zeros(self.n_unknowns)
        if not 0 < order <= self.n_solutions:
            raise ValueError(
                f'Order must be between 0 and {self.n_solutions}')
        return self.ans[:, order - 1]

    def base_vectors(self):
        """Basis vectors, as columns of a matrix."""
        raise NotImplementedError(
            f'{self.name} does not provide basis vectors')

    def compute_covariance(self, sigma_d, order):
        """
        Model covariance for the solution of a given order.

        :param sigma_d: Standard deviation of data
        :type sigma_d: float
        :param order: Order of the solution
        :type order: int
        """
        raise NotImplementedError(
            f'{self.name} does not provide a model covariance')

    def _answer_filename(self, i):
        return f'{self.name}{i + 1}.lst'

    def output_answers(self, unknowns, outdir):
        """
        Write each solution as a list of unknowns and values.

        Files are written to ``<outdir>/<NAME>/<NAME><i>.lst``.

        :param unknowns: Unknown parameters
        :type unknowns: list of :class:`~waveinv.wvi_unknowns.UnknownParameter`
        :param outdir: Output directory
        :type outdir: str

        :return: Directory where the answers were written
        :rtype: str
        """
        method_dir = os.path.join(outdir, self.name)
        os.makedirs(method_dir, exist_ok=True)
        for i in range(self.n_solutions):
            filename = os.path.join(method_dir, self._answer_filename(i))
            write_known_parameters(unknowns, self.ans[:, i], filename)
        logger.info(
            f'{self.n_solutions} {self.name} solutions written to '
            f'{method_dir}')
        return method_dir


class _ConjugateDirections(InverseProblem):
    """Common code for the conjugate gradient variants."""
    def __init__(self, ata, atd):
        super().__init__(ata, atd)
        self._p = None
        # p_i.AtA.p_i for each direction
        self._pap = None

    def base_vectors(self):
        if self._p is None:
            raise RuntimeError(f'{self.name}: compute() has not been run')
        return self._p

    def compute_covariance(self, sigma_d, order):
        base = self.base_vectors()
        cov = np.zeros((self.n_unknowns, self.n_unknowns))
        for i in range(order):
            if self._pap[i] <= 0:
                continue
            cov += sigma_d**2 / self._pap[i] * np.outer(base[:, i], base[:, i])
        return cov


class ConjugateGradientMethod(_ConjugateDirections):
    """
    Conjugate gradient method on AtA m = Atd, starting from m = 0.

    Exactly n iterations are performed, without restart. Solution i is
    the model after i+1 iterations.
    """
    name = 'CG'

    def compute(self):
        ata, atd = self.ata, self.atd
        n = self.n_unknowns
        ans = np.zeros((n, n))
        p_mat = np.zeros((n, n))
        pap_list = np.zeros(n)
        m = np.zeros(n)
        r = atd - ata @ m
        p = r.copy()
        for i in range(n):
            ap = ata @ p
            pap = p @ ap
            if not pap > 0:
                if not np.any(p):
                    logger.info(
                        f'CG converged after {i} iterations, remaining '
                        'solutions are equal to the last one')
                    ans[:, i:] = m[:, np.newaxis]
                    break
                raise NumericalError(
                    f'CG: AtA is not positive definite (iteration {i + 1})')
            alpha = (p @ r) / pap
            m = m + alpha * p
            p_mat[:, i] = p
            pap_list[i] = pap
            ans[:, i] = m
            r = r - alpha * ap
            beta = -(r @ ap) / pap
            p = r + beta * p
        self._p = p_mat
        self._pap = pap_list
        self._set_ans(ans)
        logger.info(f'CG: {n} solutions computed')


class MatrixFreeConjugateGradient(_ConjugateDirections):
    """
    Conjugate gradient on the least squares problem (CGLS), using A and d
    instead of AtA.

    :param a_matrix: Weighted partial derivative matrix A
    :type a_matrix: :class:`numpy.ndarray`
    :param d_vector: Weighted residual vector d
    :type d_vector: :class:`numpy.ndarray`
    """
    name = 'CGA'
    matrix_free = True

    def __init__(self, a_matrix, d_vector):
        # pylint: disable=super-init-not-called
        a_matrix = np.asarray(a_matrix, dtype=float)
        d_vector = np.asarray(d_vector, dtype=float)
        if a_matrix.ndim != 2 or d_vector.shape != (a_matrix.shape[0],):
            raise DataConsistencyError(
                f'A shape {a_matrix.shape} and d length {d_vector.size} '
                'do not match')
        self.a_matrix = a_matrix
        self.d_vector = d_vector
        # AtA is never formed
        self.ata = None
        self.atd = a_matrix.T @ d_vector
        self._ans = None
        self._p = None
        self._pap = None

    def compute(self):
        a_mat = self.a_matrix
        n = self.n_unknowns
        ans = np.zeros((n, n))
        p_mat = np.zeros((n, n))
        pap_list = np.zeros(n)
        m = np.zeros(n)
        r = self.d_vector.copy()
        s = a_mat.T @ r
        p = s.copy()
        gamma = s @ s
        for i in range(n):
            if gamma == 0:
                logger.info(
                    f'CGA converged after {i} iterations, remaining '
                    'solutions are equal to the last one')
                ans[:, i:] = m[:, np.newaxis]
                break
            q = a_mat @ p
            qq = q @ q
            if not qq > 0:
                raise NumericalError(
                    f'CGA: A has a null direction (iteration {i + 1})')
            alpha = gamma / qq
            m = m + alpha * p
            p_mat[:, i] = p
            pap_list[i] = qq
            ans[:, i] = m
            r = r - alpha * q
            s = a_mat.T @ r
            gamma_new = s @ s
            p = s + gamma_new / gamma * p
            gamma = gamma_new
        self._p = p_mat
        self._pap = pap_list
        self._set_ans(ans)
        logger.info(f'CGA: {n} solutions computed')


class SingularValueDecomposition(InverseProblem):
    """
    Eigen decomposition of the symmetric AtA.

    Solution j is the sum of the projections on the j+1 eigenvectors with
    the largest eigenvalues. The ensemble stops at the numerical rank of
    AtA: eigenvalues not larger than ``eigenvalue_tolerance`` times the
    largest one are never used as divisors.

    :param eigenvalue_tolerance: Relative threshold defining the rank
    :type eigenvalue_tolerance: float
    """
    name = 'SVD'

    def __init__(self, ata, atd, eigenvalue_tolerance=1e-12):
        super().__init__(ata, atd)
        self.eigenvalue_tolerance = eigenvalue_tolerance
        self.eigenvalues = None
        self.rank = None
        self._v = None

    def compute(self):
        eigenvalues, eigenvectors = np.linalg.eigh(self.ata)
        idx = np.argsort(eigenvalues)[::-1]
        self.eigenvalues = eigenvalues[idx]
        self._v = eigenvectors[:, idx]
        threshold = self.eigenvalue_tolerance * self.eigenvalues[0]
        n = self.n_unknowns
        rank = int(np.count_nonzero(self.eigenvalues > max(threshold, 0.)))
        if rank == 0:
            raise NumericalError('SVD: AtA has no positive eigenvalue')
        if rank < n:
            logger.warning(
                f'SVD: AtA has rank {rank} (of {n}), eigenvalues from '
                f'{rank + 1} on are zero within tolerance. Solutions are '
                f'truncated at order {rank}')
        self.rank = rank
        proj = self._v[:, :rank].T @ self.atd
        terms = self._v[:, :rank] * (proj / self.eigenvalues[:rank])
        self._set_ans(np.cumsum(terms, axis=1))
        logger.info(f'SVD: {rank} solutions computed')

    def _check_rank(self, order):
        if self.rank is not None and self.rank < order <= self.n_unknowns:
            raise NumericalError(
                f'SVD: order {order} is above the rank of AtA ({self.rank})')

    def answer(self, order):
        self._check_rank(order)
        return super().answer(order)

    def base_vectors(self):
        if self._v is None:
            raise RuntimeError('SVD: compute() has not been run')
        return self._v

    def compute_covariance(self, sigma_d, order):
        self._check_rank(order)
        v = self.base_vectors()
        cov = np.zeros((self.n_unknowns, self.n_unknowns))
        for k in range(order):
            cov += (sigma_d**2 / self.eigenvalues[k] *
                    np.outer(v[:, k], v[:, k]))
        return cov

    def output_answers(self, unknowns, outdir):
        method_dir = super().output_answers(unknowns, outdir)
        np.savetxt(os.path.join(method_dir, EIGENVALUE_FILE), self.eigenvalues)
        return method_dir


class LeastSquaresMethod(InverseProblem):
    """
    Damped least squares.

    For each damping parameter lambda, m solves
    (AtA + lambda TtT) m = Atd + lambda Tt eta.

    :param lambdas: Damping parameters
    :type lambdas: list of float
    :param pattern_matrix: Regularization pattern matrix T
        (identity if None)
    :type pattern_matrix: :class:`numpy.ndarray`
    :param target: Target vector eta for T m (zero if None)
    :type target: :class:`numpy.ndarray`
    """
    name = 'LSM'

    def __init__(self, ata, atd, lambdas=(0.,), pattern_matrix=None,
                 target=None):
        super().__init__(ata, atd)
        n = self.n_unknowns
        self.lambdas = [float(lam) for lam in lambdas]
        if not self.lambdas:
            raise ConfigurationError('LSM: at least one lambda is needed')
        if pattern_matrix is None:
            pattern_matrix = np.identity(n)
        pattern_matrix = np.atleast_2d(np.asarray(pattern_matrix, dtype=float))
        if pattern_matrix.shape[1] != n:
            raise DataConsistencyError(
                f'LSM: pattern matrix must have {n} columns')
        if target is None:
            target = np.zeros(pattern_matrix.shape[0])
        target = np.asarray(target, dtype=float)
        if target.shape != (pattern_matrix.shape[0],):
            raise DataConsistencyError(
                'LSM: target vector length must match the pattern matrix rows')
        self.pattern_matrix = pattern_matrix
        self.target = target

    def _lhs(self, lam):
        t_mat = self.pattern_matrix
        return self.ata + lam * t_mat.T @ t_mat

    def compute(self):
        ans = np.zeros((self.n_unknowns, len(self.lambdas)))
        t_eta = self.pattern_matrix.T @ self.target
        for i, lam in enumerate(self.lambdas):
            try:
                m = np.linalg.solve(self._lhs(lam), self.atd + lam * t_eta)
            except np.linalg.LinAlgError as err:
                raise NumericalError(
                    f'LSM: singular system for lambda={lam}') from err
            if not np.all(np.isfinite(m)):
                raise NumericalError(
                    f'LSM: non finite solution for lambda={lam}')
            ans[:, i] = m
        self._set_ans(ans)
        logger.info(f'LSM: {len(self.lambdas)} solutions computed')

    def compute_covariance(self, sigma_d, order):
        """Covariance of the solution for the lambda of index order-1."""
        lam = self.lambdas[order - 1]
        try:
            lhs_inv = np.linalg.inv(self._lhs(lam))
        except np.linalg.LinAlgError as err:
            raise NumericalError(
                f'LSM: singular system for lambda={lam}') from err
        return sigma_d**2 * lhs_inv @ self.ata @ lhs_inv

    def _answer_filename(self, i):
        return f'{self.name}{self.lambdas[i]}.lst'


class BiCGStabMethod(InverseProblem):
    """
    Biconjugate gradient stabilized method (scipy) on AtA m = Atd.

    Solution i is the iterate i+1. The ensemble has at least n solutions:
    if the method converges in less than n iterations, the remaining
    solutions are equal to the last iterate.

    :param rtol: Relative tolerance for convergence
    :type rtol: float
    :param maxiter: Maximum number of iterations (default: 10 n)
    :type maxiter: int
    """
    name = 'BCGS'

    def __init__(self, ata, atd, rtol=1e-10, maxiter=None):
        super().__init__(ata, atd)
        self.rtol = rtol
        self.maxiter = maxiter or 10 * self.n_unknowns

    def compute(self):
        n = self.n_unknowns
        iterates = []

        def _callback(xk):
            iterates.append(np.array(xk, dtype=float))

        m, info = bicgstab(
            self.ata, self.atd, x0=np.zeros(n), rtol=self.rtol, atol=0.,
            maxiter=self.maxiter, callback=_callback)
        if info < 0:
            raise NumericalError(f'BCGS: breakdown (info={info})')
        if info > 0:
            logger.warning(
                f'BCGS: no convergence after {self.maxiter} iterations')
        if not np.all(np.isfinite(m)):
            raise NumericalError('BCGS: non finite solution')
        if not iterates or not np.array_equal(iterates[-1], m):
            iterates.append(np.array(m, dtype=float))
        ans = np.zeros((n, max(n, len(iterates))))
        for i, xk in enumerate(iterates):
            ans[:, i] = xk
        ans[:, len(iterates):] = iterates[-1][:, np.newaxis]
        self._set_ans(ans)
        logger.info(f'BCGS: {len(iterates)} iterations')


# Inverse methods, keyed by short name
INVERSE_METHODS = {
    'CG': ConjugateGradientMethod,
    'SVD': SingularValueDecomposition,
    'LSM': LeastSquaresMethod,
    'CGA': MatrixFreeConjugateGradient,
    'BCGS': BiCGStabMethod,
}


def read_pattern_matrix(filename):
    """Read the LSM pattern matrix, one row per line."""
    return np.loadtxt(filename, dtype=float, ndmin=2)


def read_target_vector(filename):
    """Read the LSM target vector, one value per line."""
    return np.loadtxt(filename, dtype=float, ndmin=1)


def build_inverse_problem(name, ata, atd, config, a_matrix=None,
                          d_vector=None):
    """
    Build an inverse problem solver.

    :param name: Short name of the method (see :data:`INVERSE_METHODS`)
    :type name: str
    :param ata: AtA matrix
    :param atd: Atd vector
    :param config: Configuration object
    :param a_matrix: Weighted A (needed by matrix-free methods)
    :param d_vector: Weighted residual vector (needed by matrix-free
        methods)

    :return: Inverse problem solver
    :rtype: :class:`InverseProblem`
    """
    try:
        cls = INVERSE_METHODS[name]
    except KeyError as err:
        raise ConfigurationError(f'Unknown inverse method: "{name}"') from err
    if cls.matrix_free:
        if a_matrix is None or d_vector is None:
            raise ConfigurationError(
                f'{name} needs the partial derivative matrix A: it cannot '
                'be used from precomputed normal equations')
        return cls(a_matrix, d_vector)
    if cls is SingularValueDecomposition:
        return cls(ata, atd, config.eigenvalue_tolerance)
    if cls is LeastSquaresMethod:
        pattern = target = None
        if config.lsm_pattern_matrix_file is not None:
            pattern = read_pattern_matrix(config.lsm_pattern_matrix_file)
        if config.lsm_target_file is not None:
            target = read_target_vector(config.lsm_target_file)
        return cls(ata, atd, config.lsm_lambdas, pattern, target)
    return cls(ata, atd)
