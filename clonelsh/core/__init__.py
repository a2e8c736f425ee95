"""Core data structures shared by every layer."""
