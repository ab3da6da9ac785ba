"""Exception types raised across ddi_miner."""


class DDIMinerError(Exception):
    """Base class for ddi_miner errors."""


class ConfigurationError(DDIMinerError, ValueError):
    """Mining configuration is invalid; raised before any extraction starts."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


class PersistenceError(DDIMinerError):
    """A store failed to write a batch of evidence records."""
