"""Tests for :mod:`aardwolf.identity`."""
