from __future__ import annotations

import logging

import click
from flask import Flask
from flask.cli import AppGroup

from ..container import Container

logger = logging.getLogger(__name__)


def register(app: Flask, container: Container) -> None:
    roll_calls_cli = AppGroup("roll-calls", help="Roll-call maintenance commands.")

    @roll_calls_cli.command("expire")
    @click.option("--dry-run", is_flag=True, help="Only report what would be marked as not signed.")
    def expire(dry_run: bool) -> None:
        """Mark pending presences of expired open roll-calls as not signed."""
        result = container.roll_call_service.expire_overdue_roll_calls(dry_run=dry_run)
        prefix = "[dry-run] " if dry_run else ""
        click.echo(f"{prefix}{result.roll_calls} roll-call(s) processed, {result.presences} presence(s) not signed.")

    app.cli.add_command(roll_calls_cli)
