"""CLI subcommand handlers.

Each ``run_*`` function takes the loaded config and parsed arguments and
returns the process exit code.
"""
