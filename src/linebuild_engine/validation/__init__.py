"""Build validation reports."""
