"""Errors that end a round or a debate, as opposed to a single agent turn."""


class InfrastructureError(Exception):
    """A failure that invalidates the whole round (not attributable to one agent)."""


class ConfigurationError(InfrastructureError):
    """A required collaborator is missing or misconfigured. Raised at construction time."""
