"""Visitor check-in hub.

Kiosks and dashboards share one visitor registry:
- a lifecycle engine (Planned -> Arrived -> Left)
- command and query handlers over a SQLAlchemy registry
- a WebSocket hub that routes check-in events and broadcasts refresh signals
- a reconnecting client for kiosks and dashboards
"""
