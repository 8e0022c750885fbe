"""Build complexity scoring."""
