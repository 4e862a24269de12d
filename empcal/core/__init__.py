"""
empcal.core
===========

Typed building blocks shared by every fitting and calibration routine:
names, error taxonomy, settings, validated control inputs and model objects.
"""
