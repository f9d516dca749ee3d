"""wicked-autodeploy CLI - Main entrypoint.

Usage:
    wicked-autodeploy               # same as "run"
    wicked-autodeploy run --config autodeploy.yaml
    wicked-autodeploy version
"""

from __future__ import annotations

import typer

from wicked.autodeploy.cli.commands import register

app = typer.Typer(
    name="wicked-autodeploy",
    help="Provision a wicked application, subscription and Kubernetes secret",
    add_completion=False,
)

register(app)


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
