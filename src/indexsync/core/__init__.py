"""Index manager orchestration and service wiring."""
