"""
empcal.stats.common
===================

Generic numerical building blocks.

The functions here know nothing about controls or calibration; they provide
densities, optimization and sampling used by the methods in
`empcal.stats.methods`.
"""
