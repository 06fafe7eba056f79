from malloy_cli.commands.run import run_command


def compile_command(args, ctx) -> int:
    """Compile a Malloy file and print the SQL. Never executes."""
    return run_command(args, ctx, compile_only=True)
