"""Single-node cluster bootstrap for RapidFort Runtime."""

__version__ = '0.1.0'
