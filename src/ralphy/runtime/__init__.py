"""Runtime layers for the orchestration engine."""
