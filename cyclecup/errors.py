"""Exceptions raised by the scoring engine."""


class ScoringError(ValueError):
    """Base class for data or configuration problems found while scoring."""


class InvalidInputError(ScoringError):
    """A participant, event or result carries a value the engine cannot score."""


class InvalidSettingsError(ScoringError):
    """The settings document has the wrong shape."""
