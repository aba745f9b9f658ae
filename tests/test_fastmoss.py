"""Tests for the FastMoss browser session login flow."""

import pytest

from product_scout.cli import build_parser
from product_scout.scrapers.fastmoss import (
    FastMossSession,
    FastMossSessionExpired,
    LOGIN_TIMEOUT_SECONDS,
    check_login_status,
    is_login_url,
)


class FakeButton:
    def __init__(self):
        self.clicked = False

    async def click(self):
        self.clicked = True


class FakePage:
    """Shows the login button until ``signed_in_after`` selector checks have passed."""

    def __init__(self, signed_in_after=0, redirect_to=None):
        self.signed_in_after = signed_in_after
        self.redirect_to = redirect_to
        self.checks = 0
        self.button = FakeButton()
        self.url = "about:blank"
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.url = self.redirect_to or url

    async def wait_for_timeout(self, ms):
        pass

    async def query_selector(self, selector):
        self.checks += 1
        return None if self.checks > self.signed_in_after else self.button

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, page):
        self.page = page

    async def new_page(self):
        return self.page


def _session(tmp_path, monkeypatch, page):
    session = FastMossSession(profile_dir=tmp_path, headless=False)

    async def ensure_context():
        return FakeContext(page)

    monkeypatch.setattr(session, "_ensure_context", ensure_context)
    return session


def test_login_url_detection():
    assert is_login_url("https://www.fastmoss.com/login?redirect=/e-commerce/saleslist")
    assert not is_login_url("https://www.fastmoss.com/e-commerce/saleslist?country=th")
    with pytest.raises(FastMossSessionExpired):
        check_login_status("https://www.fastmoss.com/sign-in")


@pytest.mark.asyncio
async def test_login_already_signed_in(tmp_path, monkeypatch):
    page = FakePage(signed_in_after=0)
    session = _session(tmp_path, monkeypatch, page)

    assert await session.login(timeout_seconds=1, poll_seconds=0.01) is True
    assert page.button.clicked is False
    assert page.closed


@pytest.mark.asyncio
async def test_login_waits_for_operator(tmp_path, monkeypatch):
    # initial check, button lookup, one poll still signed out, then signed in
    page = FakePage(signed_in_after=3)
    session = _session(tmp_path, monkeypatch, page)

    assert await session.login(timeout_seconds=1, poll_seconds=0.01) is True
    assert page.button.clicked is True
    assert page.checks == 4


@pytest.mark.asyncio
async def test_login_times_out_on_login_page(tmp_path, monkeypatch):
    page = FakePage(signed_in_after=0, redirect_to="https://www.fastmoss.com/login")
    session = _session(tmp_path, monkeypatch, page)

    assert await session.login(timeout_seconds=0.02, poll_seconds=0.01) is False
    assert page.closed


def test_cli_login_arguments():
    args = build_parser().parse_args(["login"])
    assert args.command == "login"
    assert args.timeout == LOGIN_TIMEOUT_SECONDS

    args = build_parser().parse_args(["login", "--timeout", "30"])
    assert args.timeout == 30.0
