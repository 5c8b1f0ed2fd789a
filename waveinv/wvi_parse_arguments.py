# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Argument parser for waveinv programs.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import sys
from argparse import ArgumentParser, RawTextHelpFormatter
from . import __version__

PROGNAMES = ('wave_inversion', 'assemble_matrices', 'solve_inversion')


def _get_description(progname):
    if progname == 'wave_inversion':
        description = 'Linearized waveform inversion: pairing of observed '
        description += 'and synthetic waveforms,\nassembly of the normal '
        description += 'equations, inversion and evaluation of the results.'
        epilog = 'Use "-S" to write a sample configuration file.'
    elif progname == 'assemble_matrices':
        description = 'Assembly of the normal equations AtA m = Atd from '
        description += 'observed,\nsynthetic and partial derivative '
        description += 'waveforms.'
        epilog = 'Output files (ata.lst, atd.lst, dInfo.inf, unknowns.lst)\n'
        epilog += 'can be used as input for solve_inversion.'
    elif progname == 'solve_inversion':
        description = 'Inversion of precomputed normal equations and '
        description += 'evaluation of the results.'
        epilog = 'Several input directories can be given with multiple "-i"\n'
        epilog += 'options, eg.:\n'
        epilog += '  -i run1 -i run2\n'
        epilog += 'Their normal equations are summed before inversion.\n'
        epilog += 'All the directories must have the same unknowns.'
    else:
        sys.stderr.write(f'Wrong program name: {progname}\n')
        sys.exit(1)
    return description, epilog


def _init_parser(description, epilog, progname):
    parser = ArgumentParser(
        prog=progname, description=description, epilog=epilog,
        formatter_class=RawTextHelpFormatter
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        '-S', '--sampleconf', dest='sampleconf',
        action='store_true', default=False,
        help='write sample configuration to file and exit'
    )
    if progname == 'solve_inversion':
        parser.add_argument(
            '-c', '--configfile', dest='config_file',
            action='store', default=None,
            help='load configuration from FILE (default: use defaults)',
            metavar='FILE'
        )
        group.add_argument(
            '-i', '--input_dir', dest='input_dirs',
            action='append', default=None,
            help='read ata.lst, atd.lst, dInfo.inf and unknowns.lst\n'
                 'from DIR (can be repeated)',
            metavar='DIR'
        )
    else:
        group.add_argument(
            '-c', '--configfile', dest='config_file',
            action='store', default=None,
            help='load configuration from FILE',
            metavar='FILE'
        )
    return parser


def _update_parser(parser):
    parser.add_argument(
        '-o', '--outdir', dest='outdir',
        action='store', default='wvi_out',
        help='save output to a new directory inside OUTDIR\n'
             '(default: wvi_out)',
        metavar='OUTDIR'
    )
    parser.add_argument(
        '-t', '--tag', dest='tag',
        action='store', default=None,
        help='tag to include in the output directory name\n'
             '(overrides "output_folder_tag" in config file)',
        metavar='TAG'
    )
    parser.add_argument(
        '-v', '--version', action='version',
        version=__version__
    )


def parse_args(progname, argv=None):
    """
    Parse command line arguments.

    :param progname: Program name
    :type progname: str
    :param argv: Arguments to parse (default: sys.argv[1:])
    :type argv: list of str
    """
    description, epilog = _get_description(progname)
    parser = _init_parser(description, epilog, progname)
    _update_parser(parser)
    return parser.parse_args(argv)
