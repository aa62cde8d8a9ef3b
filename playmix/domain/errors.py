class ConfigError(Exception):
    """Invalid mix configuration. Raised before any item is emitted."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InsufficientSources(ConfigError):
    """No enabled source with a positive weight and at least one item."""


class MissingTarget(ConfigError):
    """Neither a target count nor a target duration was given."""


class ConflictingTargets(ConfigError):
    """More than one target (count, duration, all sources) was requested."""


class InvalidRatioEntry(ConfigError):
    """A ratio entry is out of range or cannot be normalized."""

    def __init__(self, source_id: str, reason: str) -> None:
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id


class UnknownPreset(ConfigError):
    """Requested preset template does not exist."""


class InvalidTarget(ConfigError):
    """A target count or duration was set but is not a positive integer."""
