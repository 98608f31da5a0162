"""
Loomcare: учёт обслуживания ткацких станков
"""

__version__ = "1.0.0"
