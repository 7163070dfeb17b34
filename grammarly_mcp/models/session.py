"""Pydantic models for browser session state and options."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class Viewport(BaseModel):
    width: int
    height: int


class SessionOptions(BaseModel):
    """Stealth and proxy options for creating a remote browser session."""

    stealth: Optional[bool] = None
    advanced_stealth: Optional[bool] = None  # Browserbase Scale plan feature
    block_ads: Optional[bool] = None
    solve_captchas: Optional[bool] = None
    viewport: Optional[Viewport] = None

    proxy_enabled: Optional[bool] = None
    proxy_country: Optional[str] = None  # ISO 3166-1 alpha-2, uppercase

    # BYOP (Bring Your Own Proxy)
    proxy_type: Optional[Literal["browserbase", "external"]] = None
    proxy_server: Optional[str] = None  # e.g. "http://geo.iproyal.com:12321"
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = None


class SessionInfo(BaseModel):
    """What the session manager knows about a Browserbase session."""

    session_id: str
    context_id: Optional[str] = None
    live_url: Optional[str] = None
    status: Optional[str] = None
    needs_login: Optional[bool] = None  # fresh context, manual login required
    debug_url: Optional[str] = None


class SessionResult(BaseModel):
    """Session handle returned by a browser provider."""

    session_id: str
    live_url: Optional[str] = None
    context_id: Optional[str] = None
    needs_login: Optional[bool] = None
    debug_url: Optional[str] = None


class ScoreOptions(BaseModel):
    max_steps: Optional[int] = None
    iteration: Optional[int] = None
    mode: Optional[str] = None
