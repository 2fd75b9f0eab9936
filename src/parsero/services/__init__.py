"""
parsero.services

Service layer around the orchestration engine.

Responsibilities:
- Execution entry points that compose the agent, its compiled graph, and logging.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services depend on `parsero.orchestrator`, never the other way around.
