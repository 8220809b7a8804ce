"""
EventGate admin core: authorization and audit for the event-validation platform.
"""

__version__ = "1.0.0"
