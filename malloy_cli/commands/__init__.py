"""Command handlers. Each takes (args, ctx) and returns an exit code."""
