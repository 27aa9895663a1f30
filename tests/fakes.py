"""Deterministic stand-ins for the clock and the generation service."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any


class FakeClock:
    """Millisecond clock that only moves when the scheduler sleeps on it."""

    def __init__(self, now: int = 0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> int:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += int(round(seconds * 1000))
        await asyncio.sleep(0)


class FakeGenerator:
    """Replays canned responses; an Exception in the script is raised instead.

    The last scripted response repeats once the script runs out.
    """

    def __init__(self, *responses: Any, respond: Callable[[str], str] | None = None) -> None:
        self.responses = list(responses) or [summary_json()]
        self.respond = respond
        self.prompts: list[str] = []
        self.gate: asyncio.Event | None = None

    async def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.respond is not None:
            return self.respond(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return response


def summary_json(**fields: Any) -> str:
    body: dict[str, Any] = {
        "content": "The team met to plan the release.",
        "keyPoints": [],
        "decisions": [],
        "actionItems": [],
        "quotes": [],
        "topics": [],
    }
    body.update(fields)
    return json.dumps(body)


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
