import json

from rich.console import Console

from malloy_cli.log import is_silenced


def config_show_command(args, ctx) -> int:
    """Print the effective configuration."""
    if not is_silenced():
        Console(soft_wrap=True).print_json(json.dumps(ctx.config.to_dict()))
    return 0
