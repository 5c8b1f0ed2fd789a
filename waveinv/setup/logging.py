# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Logging setup for waveinv.

Every program writes a full DEBUG log to ``<outdir>/<progname>.wvi.log``
and prints INFO messages (and above) to the console.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import sys
import os
import platform
import logging
from .config import config
from .library_versions import library_versions
from .. import __version__, __banner__

# global variables
LOGFILE = None
LOGGER = None

# ANSI escape sequences, checked from the highest level down
LEVEL_COLORS = (
    (logging.ERROR, '\x1b[31;1m'),  # red
    (logging.WARNING, '\x1b[33;1m'),  # yellow
    (logging.INFO, '\x1b[0m'),
    (logging.DEBUG, '\x1b[35;1m'),  # purple
)
RESET_COLOR = '\x1b[0m'


def _color_handler_emit(fn):
    """
    Wrap a handler ``emit()`` method to color-code messages by level.

    Source: https://stackoverflow.com/a/20707569/2021880
    """
    def new(*args):
        record = args[0]
        color = next(
            (col for level, col in LEVEL_COLORS if record.levelno >= level),
            RESET_COLOR)
        record.msg = f'{color}{record.msg}{RESET_COLOR}'
        return fn(*args)
    return new


def _file_handler(logfile):
    handler = logging.FileHandler(filename=logfile, mode='w')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s %(name)-20s %(levelname)-8s %(message)s'))
    return handler


def _console_handler():
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    # No color codes on win32 or when the output is redirected
    if sys.platform != 'win32' and sys.stdout.isatty():
        handler.emit = _color_handler_emit(handler.emit)
    return handler


def _log_run_information(progname):
    LOGGER.info(f'\n{__banner__}\nThis is WaveInv v{__version__}.\n')
    LOGGER.debug(f'{progname} START')
    uname = platform.uname()
    LOGGER.debug(f'Platform: {uname.system} {uname.release} {uname.machine}')
    lv = library_versions
    for name, version in (
            ('Python', lv.PYTHON_VERSION_STR),
            ('NumPy', lv.NUMPY_VERSION_STR),
            ('SciPy', lv.SCIPY_VERSION_STR),
            ('ObsPy', lv.OBSPY_VERSION_STR),
            ('ConfigObj', lv.CONFIGOBJ_VERSION_STR)):
        LOGGER.debug(f'{name} version: {version}')
    LOGGER.debug(f'Running arguments: {" ".join(sys.argv)}')
    LOGGER.debug(f'Output directory: {config.options.outdir}')
    methods = config.get('inverse_methods')
    if methods:
        LOGGER.debug(f'Inverse methods: {", ".join(methods)}')


def setup_logging(progname='wave_inversion'):
    """
    Set up the root logger for one of the waveinv programs.

    Handlers from a previous call are closed and removed, so the function
    can be called more than once in the same Python session.
    Warnings collected by the config object during validation are logged
    right after setup.

    :param progname: Program name, used as log file prefix
    :type progname: str
    """
    # pylint: disable=global-statement
    global LOGFILE
    global LOGGER
    outdir = config.options.outdir
    os.makedirs(outdir, exist_ok=True)
    LOGFILE = os.path.join(outdir, f'{progname}.wvi.log')

    logger_root = logging.getLogger()
    for hdlr in logger_root.handlers[:]:
        hdlr.flush()
        hdlr.close()
        logger_root.removeHandler(hdlr)
    logging.captureWarnings(True)
    logger_root.setLevel(logging.DEBUG)
    logger_root.addHandler(_file_handler(LOGFILE))
    logger_root.addHandler(_console_handler())

    LOGGER = logging.getLogger(progname)
    _log_run_information(progname)
    while config.warnings:
        LOGGER.warning(config.warnings.pop(0))
