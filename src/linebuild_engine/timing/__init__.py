"""Work-unit duration estimation."""
