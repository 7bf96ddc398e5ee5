"""Goal-inference experiments."""
