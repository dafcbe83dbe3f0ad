"""
medavail - provider appointment availability for the medical image sharing platform.
"""

__version__ = "0.1.0"
