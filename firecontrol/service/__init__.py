"""Core components of the firecontrol daemon."""
