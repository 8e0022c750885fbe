"""Location continuity, derived transfers and pod assignment."""
