"""Background jobs for the assessment workflow."""
