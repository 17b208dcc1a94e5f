"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations


class EventWatchError(Exception):
    """Base class for all eventwatch errors."""


class StartupConfigError(EventWatchError):
    """Configuration is unusable; the monitoring loop must not start."""


class SourceError(EventWatchError):
    """A fetch cycle failed. The poller recovers on the next interval."""


class SourceUnavailable(SourceError):
    """The event source could not be reached."""


class SourceQueryError(SourceError):
    """The event source returned a malformed or partial response."""


class RenderError(EventWatchError):
    """Output could not be delivered. Always fatal."""
