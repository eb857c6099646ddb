"""Database layer: engine, sessions and table models."""
