#!/usr/bin/env python3
"""
Main execution module for the step migration tool
"""

from step_migrator.cli.commands import main

if __name__ == "__main__":
    main()
