"""Token services wired on the parametrized ``store`` fixture."""

from __future__ import annotations

import pytest

from tests.helpers.utils import build_token_services


@pytest.fixture()
def tokens(store, owner):
    """Issuer, rotation engine and family service sharing ``store``."""
    services = build_token_services(store)
    services.users.add(owner, "user")
    return services
