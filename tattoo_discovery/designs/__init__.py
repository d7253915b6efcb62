"""Generated-design records."""
