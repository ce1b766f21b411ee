"""External collaborators consumed by the engines."""
