"""Operational command-line jobs."""
