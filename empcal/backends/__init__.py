"""
empcal.backends
===============

Adapters between tabular data and empcal's in-memory inputs and results.
"""
