"""This is the challenge processing submodule.

This module contains the functionality necessary to verify challenges against
sensor samples. This includes the challenge catalog, the detectors and their
tracking state, the difficulty thresholds and the session aggregation.
"""
