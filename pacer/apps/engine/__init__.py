"""Session engines: mode state machine, pipeline controller, focus monitor."""
