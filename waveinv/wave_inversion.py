# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Linearized waveform inversion.

Observed and synthetic waveforms are paired and weighted into a data
vector, partial derivatives are assembled into the normal equations
AtA m = Atd, which are solved with one or more inverse methods.
Each solution is evaluated through its normalized variance and AIC.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import logging
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])


def read_input():
    """
    Read waveform IDs, partial derivatives and unknown parameters from
    the files defined in config.

    :return: (basic_ids, partial_ids, unknowns)
    :rtype: tuple
    """
    # pylint: disable=import-outside-toplevel
    # Lazy-import modules for speed
    from .setup import config
    from .wvi_waveform_ids import read_basic_ids, read_partial_ids
    from .wvi_unknowns import read_unknown_parameters
    basic_ids = read_basic_ids(config.basic_id_file, config.basic_data_file)
    partial_ids = read_partial_ids(
        config.partial_id_file, config.partial_data_file)
    unknowns = read_unknown_parameters(config.unknown_parameter_file)
    return basic_ids, partial_ids, unknowns


def build_dvector(basic_ids):
    """
    Pair and weight observed and synthetic waveforms.

    Only the components selected in config are used.

    :param basic_ids: Observed and synthetic IDs, with data
    :type basic_ids: list of :class:`~waveinv.wvi_waveform_ids.BasicID`

    :return: Data vector
    :rtype: :class:`~waveinv.wvi_dvector.Dvector`
    """
    # pylint: disable=import-outside-toplevel
    from .setup import config
    from .wvi_dvector import Dvector
    from .wvi_weighting import WeightingHandler
    components = set(config.components)

    def _chooser(_id):
        return _id.component in components

    weighting = WeightingHandler.from_config(config)
    return Dvector(
        basic_ids, _chooser, weighting,
        at_least_three_events=config.at_least_three_events,
        time_tolerance=config.pair_time_tolerance,
        period_tolerance=config.period_tolerance
    )


def assemble_normal_equations(dvector, partial_ids, unknowns):
    """
    Assemble AtA and Atd.

    :param dvector: Data vector
    :type dvector: :class:`~waveinv.wvi_dvector.Dvector`
    :param partial_ids: Partial derivatives, with data
    :type partial_ids: list of :class:`~waveinv.wvi_waveform_ids.PartialID`
    :param unknowns: Unknown parameters
    :type unknowns: list of :class:`~waveinv.wvi_unknowns.UnknownParameter`

    :return: Matrix assembly, with AtA and Atd computed
    :rtype: :class:`~waveinv.wvi_matrix_assembly.MatrixAssembly`
    """
    # pylint: disable=import-outside-toplevel
    from .setup import config
    from .wvi_matrix_assembly import MatrixAssembly, read_ata
    assembly = MatrixAssembly(
        dvector, partial_ids, unknowns,
        time_tolerance=config.partial_time_tolerance,
        fill_empty_partial=config.fill_empty_partial,
        low_memory=config.low_memory,
        chunk_size=config.low_memory_chunk_size
    )
    reuse_ata = None
    if config.reuse_ata_file is not None:
        reuse_ata = read_ata(config.reuse_ata_file)
    assembly.compute(reuse_ata)
    return assembly


def _covariance(inverse_problem):
    """(order, covariance) for the configured order, or None."""
    # pylint: disable=import-outside-toplevel
    from .setup import config
    order = config.covariance_order or inverse_problem.n_solutions
    order = min(order, inverse_problem.n_solutions)
    try:
        cov = inverse_problem.compute_covariance(config.sigma_d, order)
    except NotImplementedError as msg:
        logger.warning(str(msg))
        return None
    return order, cov


def compute_solutions(ata, atd, data_info, a_matrix=None, d_vector=None):
    """
    Solve the normal equations with all the inverse methods in config and
    evaluate the solutions. Nothing is written to disk.

    :param ata: AtA matrix
    :param atd: Atd vector
    :param data_info: Data information
    :type data_info: :class:`~waveinv.wvi_matrix_assembly.DataInfo`
    :param a_matrix: Weighted A (only needed by matrix-free methods)
    :param d_vector: Weighted residual vector (only needed by matrix-free
        methods)

    :return: For each method name, a dict with the computed ``problem``,
        its ``variances``, ``aics`` and ``covariance`` (None if not
        computed)
    :rtype: dict
    """
    # pylint: disable=import-outside-toplevel
    from .setup import config
    from .wvi_solvers import build_inverse_problem
    from .wvi_result_evaluation import ResultEvaluation
    evaluation = ResultEvaluation(ata, atd, data_info)
    solutions = {}
    for name in config.inverse_methods:
        logger.info(f'Solving with {name}...')
        problem = build_inverse_problem(
            name, ata, atd, config, a_matrix, d_vector)
        problem.compute()
        variances, aics = evaluation.evaluate(
            problem, config.alpha, config.evaluate_num)
        covariance = None
        if config.sigma_d is not None:
            covariance = _covariance(problem)
        solutions[name] = {
            'problem': problem,
            'variances': variances,
            'aics': aics,
            'covariance': covariance,
        }
    return solutions


def write_solutions(solutions, unknowns, outdir):
    """
    Write the solutions, their evaluation and covariance, one directory
    per inverse method.

    :param solutions: Output of :func:`compute_solutions`
    :type solutions: dict
    :param unknowns: Unknown parameters
    :param outdir: Output directory
    """
    # pylint: disable=import-outside-toplevel
    import numpy as np
    from .wvi_result_evaluation import ResultEvaluation
    for solution in solutions.values():
        method_dir = solution['problem'].output_answers(unknowns, outdir)
        ResultEvaluation.write(
            method_dir, solution['variances'], solution['aics'])
        if solution['covariance'] is not None:
            order, cov = solution['covariance']
            filename = os.path.join(method_dir, f'covariance{order}.lst')
            np.savetxt(filename, cov)
            logger.info(f'Model covariance written to {filename}')


def solve_normal_equations(ata, atd, data_info, unknowns, outdir,
                           a_matrix=None, d_vector=None):
    """
    Solve and evaluate with all the inverse methods in config, then write
    the results. No file is written if any method fails.

    :return: Computed inverse problems, keyed by method name
    :rtype: dict
    """
    solutions = compute_solutions(ata, atd, data_info, a_matrix, d_vector)
    write_solutions(solutions, unknowns, outdir)
    return {name: sol['problem'] for name, sol in solutions.items()}


def needs_a_matrix():
    """True if any of the inverse methods in config is matrix-free."""
    # pylint: disable=import-outside-toplevel
    from .setup import config
    from .wvi_solvers import INVERSE_METHODS
    return any(
        INVERSE_METHODS[name].matrix_free for name in config.inverse_methods)


def main():
    """Main routine for wave_inversion."""
    # pylint: disable=import-outside-toplevel
    # Lazy-import modules for speed
    from .wvi_parse_arguments import parse_args
    options = parse_args(progname='wave_inversion')

    # Setup stage
    from .setup import config, configure_cli, setup_logging, wvi_exit
    configure_cli(options, progname='wave_inversion')
    setup_logging('wave_inversion')

    from .wvi_errors import InversionError
    from .wvi_matrix_assembly import write_normal_equations
    from .wvi_output import write_output
    outdir = config.options.outdir
    try:
        basic_ids, partial_ids, unknowns = read_input()
        dvector = build_dvector(basic_ids)
        assembly = assemble_normal_equations(dvector, partial_ids, unknowns)
        a_matrix = d_vector = None
        if needs_a_matrix():
            a_matrix = assembly.a_matrix()
            d_vector = dvector.full_d_vector
        solutions = compute_solutions(
            assembly.ata, assembly.atd, assembly.data_info,
            a_matrix, d_vector)
        # Output stage
        write_normal_equations(
            outdir, assembly.ata, assembly.atd, assembly.data_info)
        write_solutions(solutions, unknowns, outdir)
        write_output(outdir, dvector, unknowns)
    except (InversionError, OSError) as err:
        wvi_exit(err)
    wvi_exit()


if __name__ == '__main__':
    main()
