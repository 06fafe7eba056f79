"""Malloy runtime adapter and the run/compile pipeline."""
