"""
AI Habit Tips.

============================================================
PURPOSE
============================================================
Generates personalised habit tips through an external endpoint and
stores them in the ai_tips table.

FLOW:
1. Gather the user's context (profile, habits, last 30 days of progress)
2. POST the context to the tip endpoint
3. Parse the response into tips
4. Save the tips for the user

FAILURE HANDLING:
- The endpoint may answer with prose instead of JSON; that text is
  kept as a single "general" tip
- Any endpoint or backend failure yields an empty tip list; the
  caller is never interrupted

============================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from backend.client import BackendClient
from backend.query import Query
from core.clock import ClockProtocol
from core.config import AggregationConfig, IntegrationConfig
from core.exceptions import BackendError, TipGenerationError


logger = logging.getLogger(__name__)


# ============================================================
# TIP MODEL
# ============================================================

class TipType(Enum):
    """Category of a generated tip."""

    MOTIVATION = "motivation"
    STRATEGY = "strategy"
    HEALTH = "health"
    TIMING = "timing"
    ENVIRONMENT = "environment"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: Any) -> "TipType":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.GENERAL


@dataclass
class Tip:
    """One generated tip."""

    content: str
    type: TipType = TipType.GENERAL
    habit_id: Optional[str] = None

    def to_row(self, user_id: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "habit_id": self.habit_id,
            "tip_content": self.content,
            "tip_type": self.type.value,
            "is_read": False,
        }


def parse_tip_response(text: str) -> List[Tip]:
    """
    Parse the endpoint's answer.

    Accepts a JSON list of {content, type, habitId} objects or an object
    with a "tips" list. Anything else becomes one general tip holding
    the raw text.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        payload = None

    if isinstance(payload, dict):
        payload = payload.get("tips")

    if not isinstance(payload, list):
        content = (text or "").strip()
        return [Tip(content=content)] if content else []

    tips = []
    for item in payload:
        if isinstance(item, str):
            if item.strip():
                tips.append(Tip(content=item.strip()))
            continue
        if not isinstance(item, dict):
            continue
        content = str(item.get("content") or "").strip()
        if not content:
            continue
        habit_id = item.get("habitId") or item.get("habit_id")
        tips.append(Tip(
            content=content,
            type=TipType.parse(item.get("type")),
            habit_id=str(habit_id) if habit_id else None,
        ))
    return tips


# ============================================================
# GENERATOR
# ============================================================

class TipGenerator:
    """
    Requests, parses and stores AI tips for a user.
    """

    def __init__(
        self,
        backend: BackendClient,
        clock: ClockProtocol,
        config: Optional[IntegrationConfig] = None,
        aggregation: Optional[AggregationConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._backend = backend
        self._clock = clock
        self._config = config or IntegrationConfig()
        self._context_days = (aggregation or AggregationConfig()).tip_context_days
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.http_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    # --------------------------------------------------------
    # CONTEXT
    # --------------------------------------------------------

    async def get_user_context(self, user_id: str) -> Dict[str, Any]:
        """
        Profile, habits and recent progress for the tip request.

        Raises:
            QueryError: On backend failure
        """
        profile = await self._backend.maybe_single(
            Query("profiles").eq("id", user_id)
        )
        habits = await self._backend.select(
            Query("habits").eq("user_id", user_id)
        )
        since = self._clock.days_ago(self._context_days)
        progress = await self._backend.select(
            Query("habit_progress")
            .eq("user_id", user_id)
            .gte("date", since.isoformat())
            .order("date", desc=True)
        )
        return {
            "profile": profile,
            "habits": habits,
            "recentProgress": progress,
        }

    # --------------------------------------------------------
    # ENDPOINT
    # --------------------------------------------------------

    async def request_tips(self, context: Dict[str, Any]) -> List[Tip]:
        """
        POST the context and parse the answer.

        Raises:
            TipGenerationError: On non-200 status or connection failure
        """
        url = self._config.resolve(self._config.tips_endpoint_url)
        try:
            session = await self._get_session()
            async with session.post(url, json=context) as response:
                body = await response.text()
                if response.status != 200:
                    raise TipGenerationError(
                        f"Tip endpoint returned {response.status}: {body[:200]}",
                        endpoint=url,
                        status=response.status,
                    )
        except aiohttp.ClientError as e:
            raise TipGenerationError(f"Tip endpoint unreachable: {e}", endpoint=url, cause=e)
        except asyncio.TimeoutError as e:
            raise TipGenerationError("Tip endpoint timed out", endpoint=url, cause=e)
        return parse_tip_response(body)

    # --------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------

    async def generate_personalized_tips(self, user_id: str) -> List[Tip]:
        """Generate and store tips. Empty list on any failure."""
        try:
            context = await self.get_user_context(user_id)
            tips = await self.request_tips(context)
            if tips:
                await self._backend.insert("ai_tips", [tip.to_row(user_id) for tip in tips])
        except (TipGenerationError, BackendError) as e:
            logger.error(f"Tip generation failed for {user_id}: {e.message}")
            return []
        except (TypeError, ValueError) as e:
            logger.error(f"Tip context for {user_id} could not be encoded: {e}")
            return []

        logger.info(f"Generated {len(tips)} tip(s) for {user_id}")
        return tips

    async def get_tips(self, user_id: str, unread_only: bool = False) -> List[Dict[str, Any]]:
        query = Query("ai_tips").eq("user_id", user_id).order("created_at", desc=True)
        if unread_only:
            query = query.eq("is_read", False)
        return await self._backend.select(query)

    async def mark_tip_read(self, tip_id: str) -> bool:
        try:
            rows = await self._backend.update(
                Query("ai_tips").eq("id", tip_id), {"is_read": True}
            )
        except BackendError as e:
            logger.error(f"Failed to mark tip {tip_id} read: {e.message}")
            return False
        return bool(rows)


__all__ = [
    "TipType",
    "Tip",
    "parse_tip_response",
    "TipGenerator",
]
