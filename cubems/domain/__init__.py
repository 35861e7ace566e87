"""Domain objects and the exception hierarchy."""
