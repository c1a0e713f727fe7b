"""
Background job polling.

Workers:
- JobPoller: drives one remote job to a terminal state, yielding progress events
- PollRegistry: the running polls of one session, cancellable per job
"""

from .poller import JobPoller, parse_status
from .registry import PollRegistry

__all__ = ['JobPoller', 'PollRegistry', 'parse_status']
