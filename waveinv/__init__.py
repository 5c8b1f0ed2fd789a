# SPDX-License-Identifier: CECILL-2.1
"""
Init file for waveinv.

:copyright:
    2024-2026 The WaveInv developers
:license:
    CeCILL Free Software License Agreement v2.1
    (http://www.cecill.info/licences.en.html)
"""
__version__ = '0.3.0'

__banner__ = r'''
 _      __               ____
| | /| / /__ __  _____  /  _/__  _  __
| |/ |/ / _ `/ |/ / -_)_/ // _ \| |/ /
|__/|__/\_,_/|___/\__/___/_//_/|___/
'''
