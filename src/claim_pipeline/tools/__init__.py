"""Pipeline operations wrapped as JSON-returning tools."""
