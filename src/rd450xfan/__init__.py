"""
rd450xfan - fan speed control for the Lenovo ThinkServer RD450X
"""

__version__ = "1.0.0"
