# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Assembly of the normal equations AtA m = Atd.

AtA and Atd are accumulated one timewindow at a time: the full partial
derivative matrix A is only built on request, for matrix-free solvers.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import logging
import numpy as np
from .wvi_errors import DataConsistencyError, NumericalError
from .wvi_unknowns import partial_key
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

ATA_FILE = 'ata.lst'
ATD_FILE = 'atd.lst'
DINFO_FILE = 'dInfo.inf'


class DataInfo():
    """
    Information on the data vector needed to evaluate a solution.

    :param num_independent: Number of independent data
    :param d_norm: Norm of the (weighted) residual vector
    :param obs_norm: Norm of the (weighted) observed vector
    """
    def __init__(self, num_independent, d_norm, obs_norm):
        self.num_independent = float(num_independent)
        self.d_norm = float(d_norm)
        self.obs_norm = float(obs_norm)

    @classmethod
    def from_dvector(cls, dvector):
        """Build from a :class:`~waveinv.wvi_dvector.Dvector`."""
        return cls(dvector.num_independent, dvector.d_norm, dvector.obs_norm)

    @property
    def variance(self):
        """Normalized variance of the initial model."""
        if self.obs_norm <= 0:
            raise NumericalError('Observed norm must be positive')
        return self.d_norm**2 / self.obs_norm**2

    def __add__(self, other):
        return DataInfo(
            self.num_independent + other.num_independent,
            np.sqrt(self.d_norm**2 + other.d_norm**2),
            np.sqrt(self.obs_norm**2 + other.obs_norm**2)
        )

    def __repr__(self):
        return (
            f'DataInfo({self.num_independent}, {self.d_norm}, '
            f'{self.obs_norm})')


class MatrixAssembly():
    """
    Compute AtA and Atd from partial derivatives and a data vector.

    :param dvector: Data vector
    :type dvector: :class:`~waveinv.wvi_dvector.Dvector`
    :param partial_ids: Partial derivatives, with data
    :type partial_ids: list of :class:`~waveinv.wvi_waveform_ids.PartialID`
    :param unknowns: Unknown parameters, defining the order of the columns
        of A
    :type unknowns: list of :class:`~waveinv.wvi_unknowns.UnknownParameter`
    :param time_tolerance: Maximum start time difference between a partial
        derivative and its timewindow (s)
    :type time_tolerance: float
    :param fill_empty_partial: Use zeros for missing partial derivatives,
        instead of raising an error
    :type fill_empty_partial: bool
    :param low_memory: Assemble AtA in blocks of `chunk_size` timewindows
    :type low_memory: bool
    :param chunk_size: Number of timewindows per block
    :type chunk_size: int
    """
    # pylint: disable=too-many-instance-attributes

    def __init__(self, dvector, partial_ids, unknowns, time_tolerance=1.,
                 fill_empty_partial=False, low_memory=False, chunk_size=100):
        # pylint: disable=too-many-arguments
        self.dvector = dvector
        self.unknowns = tuple(unknowns)
        self.time_tolerance = time_tolerance
        self.fill_empty_partial = fill_empty_partial
        self.low_memory = low_memory
        self.chunk_size = chunk_size
        self._table = self._match_partials(partial_ids)
        self.ata = None
        self.atd = None

    def _match_partials(self, partial_ids):
        """Map (timewindow, unknown) to the corresponding partial."""
        unknown_index = {
            unknown.key: j for j, unknown in enumerate(self.unknowns)}
        table = {}
        nskipped = 0
        for pid in partial_ids:
            j = unknown_index.get(partial_key(pid))
            if j is None:
                logger.debug(f'{pid}: no corresponding unknown, skipped')
                nskipped += 1
                continue
            n = self.dvector.which_timewindow(pid, self.time_tolerance)
            if n < 0:
                logger.debug(f'{pid}: no corresponding timewindow, skipped')
                nskipped += 1
                continue
            if (n, j) in table:
                raise DataConsistencyError(f'Duplicate partial detected: {pid}')
            table[(n, j)] = pid
        if nskipped:
            logger.info(f'{nskipped} partial derivatives not used')
        return table

    def _window_block(self, n):
        """Weighted block of A for timewindow n."""
        obs_id = self.dvector.obs_ids[n]
        weight = self.dvector.weights[n]
        block = np.zeros((obs_id.npts, len(self.unknowns)))
        for j, unknown in enumerate(self.unknowns):
            pid = self._table.get((n, j))
            if pid is None:
                if not self.fill_empty_partial:
                    raise DataConsistencyError(
                        f'Input partials are not enough: no {unknown} '
                        f'partial for {obs_id}')
                logger.debug(f'{obs_id}: no {unknown} partial, zero filled')
                continue
            if not pid.contains_data:
                raise DataConsistencyError(f'{pid}: no waveform data')
            if pid.npts != obs_id.npts:
                raise DataConsistencyError(
                    f'{pid}: length ({pid.npts}) differs from timewindow '
                    f'length ({obs_id.npts})')
            if np.any(np.isnan(pid.data)):
                raise NumericalError(f'{pid}: partial derivative is NaN')
            block[:, j] = pid.data * weight * unknown.weighting
        return block

    def _partial_sums(self, with_ata):
        """
        Yield (AtA, Atd) partial sums, accumulated one timewindow at a time.

        A partial sum covers all the timewindows, or `chunk_size`
        timewindows in low memory mode.
        """
        nunknown = len(self.unknowns)
        nwin = self.dvector.n_timewindow
        size = self.chunk_size if self.low_memory else max(nwin, 1)
        d_vectors = self.dvector.d_vectors
        for start in range(0, nwin, size):
            stop = min(start + size, nwin)
            ata = np.zeros((nunknown, nunknown)) if with_ata else None
            atd = np.zeros(nunknown)
            for n in range(start, stop):
                block = self._window_block(n)
                atd += block.T @ d_vectors[n]
                if with_ata:
                    ata += block.T @ block
            if self.low_memory:
                logger.debug(f'Timewindows {start}-{stop - 1} assembled')
            yield ata, atd

    def compute(self, reuse_ata=None):
        """
        Compute AtA and Atd.

        Only one timewindow block of A (npts x number of unknowns) is held
        in memory at a time.

        :param reuse_ata: Precomputed AtA. If given, only Atd is computed.
        :type reuse_ata: :class:`numpy.ndarray`

        :return: AtA and Atd
        :rtype: tuple of :class:`numpy.ndarray`
        """
        nunknown = len(self.unknowns)
        if reuse_ata is not None:
            reuse_ata = np.asarray(reuse_ata, dtype=float)
            if reuse_ata.shape != (nunknown, nunknown):
                raise DataConsistencyError(
                    f'AtA shape {reuse_ata.shape} does not match the '
                    f'number of unknowns ({nunknown})')
        ata = np.zeros((nunknown, nunknown))
        atd = np.zeros(nunknown)
        for ata_part, atd_part in self._partial_sums(reuse_ata is None):
            atd += atd_part
            if ata_part is not None:
                ata += ata_part
        if reuse_ata is not None:
            ata = reuse_ata.copy()
            logger.info('AtA reused, Atd computed')
        else:
            # remove round-off asymmetry
            ata = (ata + ata.T) / 2
            logger.info(f'AtA ({nunknown}x{nunknown}) and Atd computed')
        self.ata = ata
        self.atd = atd
        return ata, atd

    def a_matrix(self):
        """
        Return the full weighted partial derivative matrix A.

        :return: A, of shape (npts, number of unknowns)
        :rtype: :class:`numpy.ndarray`
        """
        return np.vstack([
            self._window_block(n) for n in range(self.dvector.n_timewindow)])

    @property
    def data_info(self):
        return DataInfo.from_dvector(self.dvector)


def sum_normal_equations(datasets):
    """
    Sum normal equations from several datasets.

    :param datasets: (ata, atd, data_info) for each dataset
    :type datasets: list of tuple

    :return: Summed ata, atd and data_info
    :rtype: tuple
    """
    datasets = list(datasets)
    if not datasets:
        raise DataConsistencyError('No dataset to sum')
    ata, atd, dinfo = datasets[0]
    ata = np.array(ata, dtype=float)
    atd = np.array(atd, dtype=float)
    for _ata, _atd, _dinfo in datasets[1:]:
        if _ata.shape != ata.shape or _atd.shape != atd.shape:
            raise DataConsistencyError(
                'Normal equations to sum have different sizes')
        ata += _ata
        atd += _atd
        dinfo = dinfo + _dinfo
    return ata, atd, dinfo


# ---- File I/O ----
def write_ata(ata, filename):
    """Write AtA, one row per line."""
    np.savetxt(filename, ata)


def read_ata(filename):
    """Read AtA, one row per line."""
    ata = np.loadtxt(filename, dtype=float, ndmin=2)
    if ata.shape[0] != ata.shape[1]:
        raise DataConsistencyError(f'{filename}: AtA is not square')
    return ata


def write_atd(atd, filename):
    """Write Atd, one value per line."""
    np.savetxt(filename, atd)


def read_atd(filename):
    """Read Atd, one value per line."""
    return np.loadtxt(filename, dtype=float, ndmin=1)


def write_data_info(dinfo, filename):
    """Write data information (independent data and norms)."""
    with open(filename, 'w', encoding='utf-8') as fp:
        fp.write('# numIndependent dNorm obsNorm\n')
        fp.write(f'{dinfo.num_independent} {dinfo.d_norm} {dinfo.obs_norm}\n')


def read_data_info(filename):
    """Read data information written by :func:`write_data_info`."""
    with open(filename, 'r', encoding='utf-8') as fp:
        lines = [
            line for line in fp
            if line.strip() and not line.startswith('#')]
    try:
        num_independent, d_norm, obs_norm = lines[0].split()[:3]
        return DataInfo(num_independent, d_norm, obs_norm)
    except (IndexError, ValueError) as err:
        raise DataConsistencyError(f'{filename} is invalid') from err


def write_normal_equations(outdir, ata, atd, dinfo):
    """Write AtA, Atd and data information to outdir."""
    write_ata(ata, os.path.join(outdir, ATA_FILE))
    write_atd(atd, os.path.join(outdir, ATD_FILE))
    write_data_info(dinfo, os.path.join(outdir, DINFO_FILE))
    logger.info(f'Normal equations written to {outdir}')


def read_normal_equations(indir):
    """
    Read AtA, Atd and data information from a directory.

    :param indir: Directory containing ata.lst, atd.lst and dInfo.inf
    :type indir: str

    :return: ata, atd and data_info
    :rtype: tuple
    """
    ata = read_ata(os.path.join(indir, ATA_FILE))
    atd = read_atd(os.path.join(indir, ATD_FILE))
    dinfo = read_data_info(os.path.join(indir, DINFO_FILE))
    if ata.shape[0] != atd.size:
        raise DataConsistencyError(
            f'{indir}: AtA and Atd have different sizes')
    logger.info(f'Normal equations read from {indir}')
    return ata, atd, dinfo
