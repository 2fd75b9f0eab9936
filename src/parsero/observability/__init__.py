"""
parsero.observability

Observability package.

Responsibilities:
- Structured logging configuration and logger access.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Tracing exporters can be added here without touching orchestration logic.
