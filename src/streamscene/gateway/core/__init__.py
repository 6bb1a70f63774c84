"""Gateway core primitives."""
