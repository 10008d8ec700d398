"""Pytest configuration and fixtures for Talisman tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from talisman import DictLoader, Environment, Template


@pytest.fixture
def env() -> Environment:
    """Create a basic Talisman Environment."""
    return Environment()


@pytest.fixture
def env_quiet() -> Environment:
    """Environment that renders unresolved tags as nothing."""
    return Environment(show_undefined_tags=False)


@pytest.fixture
def env_with_loader() -> Environment:
    """Environment with a DictLoader holding a few pages and fragments."""
    loader = DictLoader(
        {
            "page.html": "<main>{header}<!--{#list}--><ul>{items}</ul><!--{/list}--></main>",
            "header.html": "<h1>{title}</h1>",
            "rows.html": "<ol><!--{#row}--><li>{name}</li><!--{/row}--></ol>",
            "broken.html": "<!--{#open}--> never closed",
        }
    )
    return Environment(loader=loader)


async def render(template: Template) -> str:
    """Render a template to text."""
    return await template.render_async()


async def later(value: Any, delay: float = 0.01) -> Any:
    """Resolve to ``value`` after ``delay`` seconds."""
    await asyncio.sleep(delay)
    return value


async def rejected(message: str = "upstream failed", delay: float = 0.0) -> Any:
    """Fail with RuntimeError after ``delay`` seconds."""
    await asyncio.sleep(delay)
    raise RuntimeError(message)


async def agen(items: list[Any], delay: float = 0.0):
    """Async generator yielding ``items`` with an optional pause between them."""
    for item in items:
        await asyncio.sleep(delay)
        yield item


def assert_contains(result: str, *expected_parts: str) -> None:
    """Assert rendered output contains all expected parts."""
    for part in expected_parts:
        assert part in result, (
            f"Rendered output missing expected content:\n"
            f"  Missing: {part!r}\n"
            f"  Actual: {result!r}"
        )
