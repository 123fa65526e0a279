# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Remote autonomy check consulted before a checkout goes through.

The service answers allow/deny for a proposed action given today's spend
context.  Every failure mode (timeout, transport error, non-2xx status,
malformed body) resolves to *allow*: a broken backend must never block a
purchase on its own.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .catalog import DEFAULT_COOLOFF_MINUTES
from .errors import AutonomyCheckError

logger = logging.getLogger(__name__)

DEFAULT_AUTONOMY_TIMEOUT_S = 3.0
CHECK_PATH = "/autonomy/check"

# Used as currentPrice for a checkout click when the page shows no price
UNKNOWN_PRICE_SENTINEL = 9999.0


class DenyAction(StrEnum):
    """How a denied action is enforced on the page."""

    REDIRECT_AWAY = "redirect_away"
    BLOCK_CHECKOUT = "block_checkout"
    REQUIRE_COOLOFF = "require_cooloff"


class AutonomyContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_spent_today: float = Field(0.0, alias="totalSpentToday")
    time_on_shopping_sites: int = Field(0, alias="timeOnShoppingSites")
    current_price: float = Field(0.0, alias="currentPrice")
    risk_level: str = Field("medium", alias="riskLevel")


class AutonomyRequest(BaseModel):
    action: Literal["checkout", "browse"] = "checkout"
    context: AutonomyContext = Field(default_factory=AutonomyContext)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class AutonomyDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    allow: bool = True
    action: str | None = None
    reason: str | None = None
    message: str | None = None
    cooloff_minutes: int | None = Field(None, alias="cooloffMinutes")

    @property
    def deny_action(self) -> DenyAction:
        # Unknown or missing actions fall back to a plain block
        try:
            return DenyAction(self.action)
        except ValueError:
            return DenyAction.BLOCK_CHECKOUT

    @property
    def cooloff_seconds(self) -> int:
        minutes = self.cooloff_minutes if self.cooloff_minutes and self.cooloff_minutes > 0 else DEFAULT_COOLOFF_MINUTES
        return minutes * 60


ALLOW = AutonomyDecision(allow=True)


class AutonomyChecker(Protocol):
    async def check(self, request: AutonomyRequest) -> AutonomyDecision: ...


class HttpAutonomyClient:
    """POSTs ``{api_url}/autonomy/check``. Raises ``AutonomyCheckError`` on any failure."""

    def __init__(self, api_url: str, *, client: httpx.AsyncClient | None = None) -> None:
        self._url = api_url.rstrip("/") + CHECK_PATH
        self._client = client  # caller-owned when given

    async def check(self, request: AutonomyRequest) -> AutonomyDecision:
        client = self._client or httpx.AsyncClient()
        try:
            try:
                response = await client.post(self._url, json=request.to_wire())
            except httpx.HTTPError as e:
                raise AutonomyCheckError(f"autonomy service unreachable: {e}") from e
            if not response.is_success:
                raise AutonomyCheckError(
                    f"autonomy service returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            try:
                return AutonomyDecision.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise AutonomyCheckError(f"malformed autonomy decision: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()


async def check_autonomy(
    checker: AutonomyChecker | None,
    request: AutonomyRequest,
    timeout_s: float = DEFAULT_AUTONOMY_TIMEOUT_S,
) -> AutonomyDecision:
    """Bounded, fail-open wrapper around ``checker.check``."""
    if checker is None:
        return ALLOW
    try:
        return await asyncio.wait_for(checker.check(request), timeout=timeout_s)
    except TimeoutError:
        logger.info("Autonomy check timed out after %.1fs, allowing", timeout_s)
    except AutonomyCheckError as e:
        logger.info("Autonomy check failed (%s), allowing", e)
    except Exception:
        logger.warning("Autonomy check raised unexpectedly, allowing", exc_info=True)
    return ALLOW
