# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Program termination for the waveinv command line tools.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import sys
import logging
import signal
from .config import config
from ..wvi_errors import (
    ConfigurationError, DataConsistencyError, NumericalError)
logger = logging.getLogger(__name__.rsplit('.', maxsplit=1)[-1])

# Exit status for each family of inversion errors.
# Any other failure exits with 1.
EXIT_STATUS = (
    (ConfigurationError, 2),
    (DataConsistencyError, 3),
    (NumericalError, 4),
)


def _exit_status(error):
    for error_class, retval in EXIT_STATUS:
        if isinstance(error, error_class):
            return retval
    return 1


def wvi_exit(status=0, abort=False):
    """
    Close the log and leave the program.

    ``status`` can be:

    - an integer, used as the exit status;
    - a string, logged as an error, with exit status 1;
    - an exception, logged as an error, with an exit status depending
      on its class (see :data:`EXIT_STATUS`).

    Outside of the command line tools (e.g., when the workflow is driven
    from Python), a failure raises a :class:`RuntimeError` instead of
    calling :func:`sys.exit`.

    :param status: Exit status, error message or exception
    :type status: int, str or Exception
    :param abort: If True, the run was interrupted by the user
    :type abort: bool
    """
    if wvi_exit.WVI_EXIT_CALLED:
        return
    wvi_exit.WVI_EXIT_CALLED = True
    err_message = None
    if isinstance(status, BaseException):
        err_message = f'{type(status).__name__}: {status}'
        retval = _exit_status(status)
    elif isinstance(status, str):
        err_message = status
        retval = 1
    else:
        retval = status
    if err_message is not None:
        logger.error(err_message)
    if abort:
        print('\nAborting.')
        logger.debug(f'{config.progname} ABORTED')
    else:
        logger.debug(f'{config.progname} END (status {retval})')
    logging.shutdown()
    if not config.running_from_command_line and retval:
        raise RuntimeError(err_message)
    sys.exit(retval)


wvi_exit.WVI_EXIT_CALLED = False


def _sigint_handler(sig, frame):
    # pylint: disable=unused-argument
    wvi_exit(130, abort=True)


signal.signal(signal.SIGINT, _sigint_handler)
