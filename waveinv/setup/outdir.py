# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Output directory functions for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import os
from datetime import datetime


def get_outdir_path(basedir, tag=None, append_date=True, now=None):
    """
    Construct full path to output directory.

    The directory name is ``inversion``, followed by the optional tag
    and by the optional date string.

    :param basedir: Base directory
    :type basedir: str
    :param tag: Tag to include in the directory name
    :type tag: str or None
    :param append_date: Whether to append a date string
    :type append_date: bool
    :param now: Date to use (default: current date)
    :type now: :class:`datetime.datetime` or None

    :return: Output directory path
    :rtype: str
    """
    dirname = 'inversion'
    if tag:
        dirname += f'_{tag}'
    if append_date:
        now = datetime.now() if now is None else now
        dirname += f'_{now.strftime("%Y%m%d_%H%M%S")}'
    return os.path.join(basedir, dirname)


def make_outdir(basedir, tag=None, append_date=True):
    """
    Create the output directory and return its path.

    :param basedir: Base directory
    :type basedir: str
    :param tag: Tag to include in the directory name
    :type tag: str or None
    :param append_date: Whether to append a date string
    :type append_date: bool

    :return: Output directory path
    :rtype: str
    """
    outdir = get_outdir_path(basedir, tag, append_date)
    os.makedirs(outdir, exist_ok=True)
    return outdir
