"""HTTP API for the calendar engine."""
