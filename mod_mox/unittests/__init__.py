"""Unit tests for :mod:`mod_mox`."""
