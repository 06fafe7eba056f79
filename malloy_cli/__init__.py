"""
Malloy CLI — compile and run Malloy files from the terminal.

The Malloy runtime does the language work. This package is the glue.

Domains:
  cli.py         argument grammar, pre-action setup, dispatch
  commands/      one handler per subcommand
  connections/   connection store, live drivers, lookup for the runtime
  malloy/        runtime adapter, query selection, run/compile pipeline
  config.py      config.json loading
  log.py         diagnostic logger + categorized result output
"""

__version__ = "0.0.1"
