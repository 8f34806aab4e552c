"""neuroevo command line."""
