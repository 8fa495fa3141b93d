"""Version parsing and ordering helpers."""
