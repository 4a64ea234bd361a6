"""Shared helpers for the ormspine test suite."""
