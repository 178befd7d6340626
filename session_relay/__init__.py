"""
Session Relay.

Shares one host's live initiative-tracker state with any number of viewers:
an HTTP API for session CRUD and a WebSocket channel that pushes every
update to subscribed viewers.
"""

__version__ = "0.1.0"
