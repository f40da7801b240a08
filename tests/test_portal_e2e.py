"""End-to-end tests against the live KCIS portal.

These need --e2e and a real account token in $KCIS_ACCOUNT.
"""

import os

import pytest

from kcis_tools import KCISSession, check_account


@pytest.fixture(scope="module")
def account() -> str:
    """Return the account token for the live portal."""
    token = os.environ.get("KCIS_ACCOUNT")
    if not token:
        pytest.skip("KCIS_ACCOUNT is not set")
    return token


@pytest.mark.e2e
def test_live_account_is_accepted(account):
    """Test that the portal shows the logout link for a real account."""
    assert check_account(account)


@pytest.mark.e2e
def test_live_bogus_account_is_rejected():
    """Test that a made-up token is not logged in."""
    assert not check_account("not-a-real-token")


@pytest.mark.e2e
def test_live_home_page(account):
    """Test that the home page can be fetched with the DSAI cookie intact."""
    with KCISSession(account) as session:
        result = session.get_api()

    assert result
    assert result.status_code == 200
    assert session.cookies.get("DSAI", path="/DSAI/") == account
