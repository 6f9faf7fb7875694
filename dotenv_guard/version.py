#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Automatically-managed package version"""

__version__ = "1.0.0"
