"""Exceptions raised by the crime incident analysis pipeline."""


class AnalysisError(Exception):
    """Base class for pipeline errors"""


class DataIntegrityError(AnalysisError):
    """Input data is too broken to analyse (missing columns, too many bad rows)"""


class InvalidConfigurationError(AnalysisError, ValueError):
    """A caller-supplied parameter is invalid for the given data"""
