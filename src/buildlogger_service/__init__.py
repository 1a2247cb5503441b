"""Buildlogger query service: log lookup by id, task, test name and group."""

__version__ = "0.1.0"
