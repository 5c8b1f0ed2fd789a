# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Assembly of the normal equations, without inversion.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""


def main():
    """Main routine for assemble_matrices."""
    # pylint: disable=import-outside-toplevel
    # Lazy-import modules for speed
    from .wvi_parse_arguments import parse_args
    options = parse_args(progname='assemble_matrices')

    from .setup import config, configure_cli, setup_logging, wvi_exit
    configure_cli(options, progname='assemble_matrices')
    setup_logging('assemble_matrices')

    from .wvi_errors import InversionError
    from .wave_inversion import (
        read_input, build_dvector, assemble_normal_equations)
    from .wvi_matrix_assembly import write_normal_equations
    from .wvi_output import write_output
    outdir = config.options.outdir
    try:
        basic_ids, partial_ids, unknowns = read_input()
        dvector = build_dvector(basic_ids)
        assembly = assemble_normal_equations(dvector, partial_ids, unknowns)
        write_normal_equations(
            outdir, assembly.ata, assembly.atd, assembly.data_info)
        write_output(outdir, dvector, unknowns)
    except (InversionError, OSError) as err:
        wvi_exit(err)
    wvi_exit()


if __name__ == '__main__':
    main()
