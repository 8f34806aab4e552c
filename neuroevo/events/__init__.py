"""Event bus — how evolution runs report progress and outcomes."""
