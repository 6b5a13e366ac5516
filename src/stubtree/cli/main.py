"""
stubtree CLI - Main entry point.

Each command is implemented in its own module under cli/commands/.
"""

import click

from .commands import assemble, serve


@click.group()
@click.version_option(package_name="stubtree")
def main():
    """stubtree: dependency trees for test-authoring prompts.

    \b
    Quick Start:
      stubtree assemble records.json --target handle_request
      stubtree serve --snapshot backend.json
    """
    pass


main.add_command(assemble.assemble)
main.add_command(serve.serve)

if __name__ == "__main__":
    main()
