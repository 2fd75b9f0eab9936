"""
parsero.orchestrator

Orchestration package (procedure interpreter + LangGraph compiler).

Responsibilities:
- Procedure model, state container and flat state codec.
- Interpreter loop and graph compilation sharing the same routing rules.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Public names are re-exported from `parsero`; import from there in application code.
