"""Trip persistence: lifecycle records and eco scores."""
