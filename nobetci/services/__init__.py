"""Cross-check, orchestration, persistence and metrics services."""
