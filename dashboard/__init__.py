"""GitHub account dashboard core."""
