# -*- coding: utf-8 -*-
# SPDX-License-Identifier: CECILL-2.1
"""
A minimal setup script for WaveInv.

This script reads the README for the long description.

All the remaining configuration is in pyproject.toml.
"""
from setuptools import setup

with open('README.md', 'rb') as f:
    long_description = f.read().decode('utf-8')

setup(
    long_description=long_description,
    long_description_content_type='text/markdown',
)
