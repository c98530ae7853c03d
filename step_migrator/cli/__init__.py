"""Command-line interface: click group, subcommands and run reports."""
