"""Main function for stepmaster."""

from stepmaster.core import cli


def run_main() -> None:
    """Main entry point to stepmaster."""
    cli.app()


if __name__ == "__main__":
    cli.app()
