"""External collaborators of the engine (persistence)."""
