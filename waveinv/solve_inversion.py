# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Inversion of precomputed normal equations.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
import logging
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])


def read_input_dirs(input_dirs):
    """
    Read and sum the normal equations from one or more directories.

    :param input_dirs: Directories written by assemble_matrices
    :type input_dirs: list of str

    :return: (ata, atd, data_info, unknowns)
    :rtype: tuple

    :raises DataConsistencyError: If the directories have different unknowns
    """
    # pylint: disable=import-outside-toplevel
    from .wvi_errors import DataConsistencyError
    from .wvi_matrix_assembly import read_normal_equations, sum_normal_equations
    from .wvi_output import UNKNOWNS_FILE
    from .wvi_unknowns import read_unknown_parameters
    datasets = []
    unknowns = None
    for indir in input_dirs:
        _unknowns = read_unknown_parameters(
            os.path.join(indir, UNKNOWNS_FILE))
        if unknowns is None:
            unknowns = _unknowns
        elif _unknowns != unknowns:
            raise DataConsistencyError(
                f'{indir}: unknowns differ from those in {input_dirs[0]}')
        datasets.append(read_normal_equations(indir))
    ata, atd, dinfo = sum_normal_equations(datasets)
    if atd.size != len(unknowns):
        raise DataConsistencyError(
            f'Number of unknowns ({len(unknowns)}) does not match '
            f'AtA size ({atd.size})')
    if len(datasets) > 1:
        logger.info(f'Normal equations summed from {len(datasets)} datasets')
    return ata, atd, dinfo, unknowns


def main():
    """Main routine for solve_inversion."""
    # pylint: disable=import-outside-toplevel
    # Lazy-import modules for speed
    from .wvi_parse_arguments import parse_args
    options = parse_args(progname='solve_inversion')

    from .setup import config, configure_cli, setup_logging, wvi_exit
    configure_cli(options, progname='solve_inversion')
    setup_logging('solve_inversion')

    from .wvi_errors import InversionError
    from .wave_inversion import compute_solutions, write_solutions
    from .wvi_matrix_assembly import write_normal_equations
    from .wvi_output import write_output
    outdir = config.options.outdir
    try:
        ata, atd, dinfo, unknowns = read_input_dirs(config.options.input_dirs)
        solutions = compute_solutions(ata, atd, dinfo)
        # Output stage
        if len(config.options.input_dirs) > 1:
            write_normal_equations(outdir, ata, atd, dinfo)
        write_solutions(solutions, unknowns, outdir)
        write_output(outdir, unknowns=unknowns)
    except (InversionError, OSError) as err:
        wvi_exit(err)
    wvi_exit()


if __name__ == '__main__':
    main()
