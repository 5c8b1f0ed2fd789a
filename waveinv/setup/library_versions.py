# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Retrieve and check library versions for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
import sys


def _version_tuple(version_str):
    """
    Convert a version string to a tuple of three integers.

    Release candidates and development versions are truncated
    to their numeric part.
    """
    version = []
    for field in version_str.split('.')[:3]:
        digits = ''
        for char in field:
            if not char.isdigit():
                break
            digits += char
        version.append(int(digits) if digits else 0)
    while len(version) < 3:
        version.append(0)
    return tuple(version)


class _LibraryVersions():
    """
    Check library versions.

    This is a private class, only the instance `library_versions` is
    accessible from the outside.
    """
    def __init__(self):
        self.MIN_NUMPY_VERSION = (1, 22, 0)
        self.MIN_SCIPY_VERSION = (1, 12, 0)
        self.MIN_OBSPY_VERSION = (1, 2, 0)
        self.MIN_CONFIGOBJ_VERSION = (5, 0, 8)
        self.NUMPY_VERSION_STR = None
        self.SCIPY_VERSION_STR = None
        self.OBSPY_VERSION_STR = None
        self.CONFIGOBJ_VERSION_STR = None
        self.PYTHON_VERSION_STR = None
        self.check_base_library_versions()
        self.check_obspy_version()

    @staticmethod
    def _check_min_version(name, version_str, min_version):
        if _version_tuple(version_str) < min_version:
            min_version_str = '.'.join(map(str, min_version))
            raise ImportError(
                f'ERROR: {name} >= {min_version_str} is required. '
                f'You have version: {version_str}'
            )

    def check_base_library_versions(self):
        """
        Check base library versions.
        """
        # pylint: disable=import-outside-toplevel
        self.PYTHON_VERSION_STR = '.'.join(map(str, sys.version_info[:3]))
        import numpy
        self.NUMPY_VERSION_STR = numpy.__version__
        self._check_min_version(
            'NumPy', self.NUMPY_VERSION_STR, self.MIN_NUMPY_VERSION)
        import scipy
        self.SCIPY_VERSION_STR = scipy.__version__
        self._check_min_version(
            'SciPy', self.SCIPY_VERSION_STR, self.MIN_SCIPY_VERSION)
        # configobj does not always expose its version
        from importlib.metadata import version, PackageNotFoundError
        try:
            self.CONFIGOBJ_VERSION_STR = version('configobj')
        except PackageNotFoundError:
            self.CONFIGOBJ_VERSION_STR = 'unknown'
        if self.CONFIGOBJ_VERSION_STR != 'unknown':
            self._check_min_version(
                'ConfigObj', self.CONFIGOBJ_VERSION_STR,
                self.MIN_CONFIGOBJ_VERSION)

    def check_obspy_version(self):
        """
        Check ObsPy version.
        """
        # pylint: disable=import-outside-toplevel
        import obspy
        self.OBSPY_VERSION_STR = obspy.__version__
        self._check_min_version(
            'ObsPy', self.OBSPY_VERSION_STR, self.MIN_OBSPY_VERSION)


# class instance exposed to the outside
try:
    library_versions = _LibraryVersions()
except ImportError as _error:
    sys.exit(_error)
