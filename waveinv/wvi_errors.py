# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
Exceptions raised by waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""


class InversionError(Exception):
    """
    Base class for waveinv errors.

    Not meant to be raised directly, but only as a base class for
    the other errors.
    """


class ConfigurationError(InversionError, ValueError):
    """Missing or invalid configuration parameter."""


class DataConsistencyError(InversionError):
    """
    Inconsistent input data (duplicate records, missing partials,
    missing weighting entries, ...).
    """


class NumericalError(InversionError, ArithmeticError):
    """
    Numerical failure (singular matrix, vanishing denominator, NaN data).
    """
