"""Secure score history tracker."""

__version__ = "0.1.0"
