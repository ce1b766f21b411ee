"""Session engines and the collaborators they run against."""
