"""FastAPI service exposing the tally monitoring read API."""
