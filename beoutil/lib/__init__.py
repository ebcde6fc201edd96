"""Shared library for the beoutil command line."""
