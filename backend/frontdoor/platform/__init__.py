"""Cross-cutting platform pieces: CORS, service container."""
