"""MeshSnap - export captured render meshes to 3D model files."""

import sys
from typing import Optional

import click

from meshsnap.cli.app import app


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the MeshSnap CLI."""
    try:
        result = app(args=argv, standalone_mode=False)
        # non-standalone click returns the exit code of typer.Exit
        return result if isinstance(result, int) else 0
    except click.exceptions.Abort:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
