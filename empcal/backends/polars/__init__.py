"""
empcal.backends.polars
======================

Polars DataFrame adapters.
"""
