"""Utility functions and classes: logging, exceptions and array operations."""
