"""HTTP API for the Section purger."""
