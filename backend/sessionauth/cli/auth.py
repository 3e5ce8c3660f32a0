"""Flask CLI commands for account bootstrap and session incident response."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import click
from flask.cli import with_appcontext
from marshmallow import ValidationError

from sessionauth.api.deps import get_auth_service
from sessionauth.repositories.user import UserRepository
from sessionauth.schemas import CreateUserSchema
from sessionauth.services._shared.errors import ConflictError, NotFoundError
from sessionauth.services.auth.dto import RegisterIn

LOGGER = logging.getLogger(__name__)


def _state(credential) -> str:
    if credential.revoked:
        return "revoked"
    if credential.used:
        return "used"
    if credential.is_expired(datetime.now(UTC)):
        return "expired"
    return "active"


@click.group("auth")
def auth_cli() -> None:
    """Account and refresh-session administration."""


@auth_cli.command("create-user")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--role", default="user", show_default=True, type=click.Choice(["user", "admin"]))
@with_appcontext
def create_user_command(email: str, password: str, role: str) -> None:
    """Create an account (bypasses the public registration endpoint)."""
    try:
        data = CreateUserSchema().load({"email": email, "password": password, "role": role})
    except ValidationError as exc:
        raise click.BadParameter(str(exc.messages)) from exc

    try:
        user = get_auth_service().register(
            RegisterIn(email=data["email"], password=data["password"], role=data["role"])
        )
    except ConflictError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created user id={user.id} email={user.email} role={user.role}")


@auth_cli.command("revoke-sessions")
@click.argument("email")
@with_appcontext
def revoke_sessions_command(email: str) -> None:
    """Revoke every refresh token of the user with EMAIL."""
    user = UserRepository().get_by_email(email)
    if user is None:
        raise click.ClickException(f"User not found: {email}")
    revoked = get_auth_service().logout_all(user.id)
    LOGGER.warning("cli.revoke_sessions", extra={"owner_id": user.id, "family_size": revoked})
    click.echo(f"Revoked {revoked} refresh token(s) for {user.email}")


@auth_cli.command("show-family")
@click.argument("credential_id")
@with_appcontext
def show_family_command(credential_id: str) -> None:
    """Print the rotation family containing CREDENTIAL_ID as an indented tree."""
    service = get_auth_service()
    try:
        members = service.family.family_of(credential_id)
    except NotFoundError as exc:
        raise click.ClickException(str(exc)) from exc

    depth: dict[str, int] = {}
    for credential in members:
        depth[credential.id] = depth.get(credential.parent_id, -1) + 1 if credential.parent_id else 0
        marker = " <" if credential.id == credential_id else ""
        click.echo(
            f"{'  ' * depth[credential.id]}{credential.id} "
            f"[{_state(credential)}] expires={credential.expires_at:%Y-%m-%d %H:%M}{marker}"
        )


@auth_cli.command("list-sessions")
@click.argument("email")
@click.option("--active-only", is_flag=True, help="Hide used and revoked credentials.")
@with_appcontext
def list_sessions_command(email: str, active_only: bool) -> None:
    """List the refresh tokens of the user with EMAIL, oldest first."""
    user = UserRepository().get_by_email(email)
    if user is None:
        raise click.ClickException(f"User not found: {email}")
    for credential in get_auth_service().sessions(user.id):
        state = _state(credential)
        if active_only and state != "active":
            continue
        parent = credential.parent_id or "-"
        click.echo(f"{credential.id} parent={parent} [{state}] expires={credential.expires_at:%Y-%m-%d %H:%M}")
