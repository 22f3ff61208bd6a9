"""Session data model: tagged phase, readiness and captured artifacts."""
