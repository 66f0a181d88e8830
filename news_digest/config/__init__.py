"""Settings and feed catalog."""
