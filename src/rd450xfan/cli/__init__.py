"""
CLI package for rd450xfan

This package provides the command-line interface for
reading and setting fan speeds.
"""

from .interface import main

__all__ = ['main']
