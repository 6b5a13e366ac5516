"""
CLI commands. Each module exposes one click command.
"""
