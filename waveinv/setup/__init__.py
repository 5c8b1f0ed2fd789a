# -*- coding: utf8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Configuration, logging and exit functions for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
from .config import config  # noqa
from .configure_cli import configure_cli  # noqa
from .logging import setup_logging  # noqa
from .exit import wvi_exit  # noqa
from .outdir import get_outdir_path, make_outdir  # noqa
