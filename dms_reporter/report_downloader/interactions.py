"""Multi-strategy element lookup for the portal's drifting UI.

Every control the workflow touches is described by an ordered list of
selector strategies. Strategies are tried strictly in order and the first one
that yields a visible element wins; later strategies are never evaluated.
When every declarative selector fails, an optional in-page script gets a last
chance before ``ElementNotFound`` is raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Sequence, Tuple, Union

from playwright.async_api import Locator, Page

from .errors import ElementNotFound
from .json_logger import JsonLogger, log_event
from .models import Found, Lookup, NotFound

DEFAULT_STEP_TIMEOUT_MS = 10_000

Attempt = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Strategy:
    name: str
    selector: str


@dataclass(frozen=True)
class Click:
    pass


@dataclass(frozen=True)
class Type:
    text: str


Action = Union[Click, Type]


@dataclass(frozen=True)
class JsFallback:
    """In-page query evaluated with ``page.evaluate``; truthy result means it acted."""

    name: str
    script: str
    arg: Any = None


# Clicks the first <tag> whose textContent contains the needle.
CLICK_BY_TEXT_JS = """([tag, needle]) => {
    const nodes = Array.from(document.querySelectorAll(tag));
    const match = nodes.find(n => (n.textContent || '').includes(needle));
    if (match) { match.click(); return true; }
    return false;
}"""

# Clicks the nearest <button> (or parent) of an element carrying data-testid.
CLICK_TEST_ID_PARENT_JS = """(testId) => {
    const icon = document.querySelector(`[data-testid="${testId}"]`);
    if (!icon) return false;
    const target = icon.closest('button') || icon.parentElement;
    if (!target) return false;
    target.click();
    return true;
}"""

# Clicks the first element matching a CSS selector.
CLICK_CSS_JS = """(selector) => {
    const el = document.querySelector(selector);
    if (el) { el.click(); return true; }
    return false;
}"""


def strategies(pairs: Iterable[Tuple[str, str]]) -> list[Strategy]:
    return [Strategy(name=name, selector=selector) for name, selector in pairs]


async def first_match(
    attempts: Sequence[Tuple[str, Attempt]],
    *,
    logger: JsonLogger,
    description: str,
) -> Lookup:
    """Run ``attempts`` in order; the first truthy, non-raising result wins."""

    tried: list[str] = []
    for name, attempt in attempts:
        tried.append(name)
        try:
            result = await attempt()
        except Exception as exc:
            log_event(
                logger=logger,
                phase="selectors",
                status="info",
                message="strategy failed",
                target=description,
                strategy=name,
                error=str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
            )
            continue
        if result is None or result is False:
            log_event(
                logger=logger,
                phase="selectors",
                status="info",
                message="strategy matched nothing",
                target=description,
                strategy=name,
            )
            continue
        log_event(
            logger=logger,
            phase="selectors",
            message="strategy succeeded",
            target=description,
            strategy=name,
        )
        return Found(handle=result, strategy=name)
    return NotFound(tried=tried)


async def _perform(locator: Locator, action: Action | None) -> None:
    if action is None:
        return
    if isinstance(action, Type):
        await locator.fill(action.text)
        return
    await locator.click()


def _selector_attempt(
    page: Page,
    strategy: Strategy,
    *,
    action: Action | None,
    timeout_ms: int,
    require_visible: bool,
) -> Attempt:
    async def _attempt() -> Locator:
        locator = page.locator(strategy.selector).first
        await locator.wait_for(state="visible" if require_visible else "attached", timeout=timeout_ms)
        await _perform(locator, action)
        return locator

    return _attempt


def _js_attempt(page: Page, fallback: JsFallback) -> Attempt:
    async def _attempt() -> Any:
        return await page.evaluate(fallback.script, fallback.arg)

    return _attempt


async def find_first(
    page: Page,
    candidates: Sequence[Strategy],
    *,
    logger: JsonLogger,
    description: str,
    timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
    require_visible: bool = True,
) -> Lookup:
    """Locate without acting."""

    attempts = [
        (
            candidate.name,
            _selector_attempt(
                page,
                candidate,
                action=None,
                timeout_ms=timeout_ms,
                require_visible=require_visible,
            ),
        )
        for candidate in candidates
    ]
    return await first_match(attempts, logger=logger, description=description)


async def locate_and_act(
    page: Page,
    candidates: Sequence[Strategy],
    action: Action,
    *,
    logger: JsonLogger,
    description: str,
    timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
    require_visible: bool = True,
    fallbacks: Sequence[JsFallback] = (),
    scripts_first: bool = False,
) -> Found[Any]:
    """Find a control via ``candidates`` (then ``fallbacks``) and act on it.

    ``scripts_first`` puts the in-page fallbacks ahead of the declarative
    selectors for controls where a programmatic click is the most reliable
    mechanism (MUI buttons wrapped around icons). In-page scripts only click,
    so ``fallbacks`` cannot be combined with a ``Type`` action.
    """

    if fallbacks and isinstance(action, Type):
        raise ValueError(f"Script fallbacks cannot type into {description}")

    selector_attempts = [
        (
            candidate.name,
            _selector_attempt(
                page,
                candidate,
                action=action,
                timeout_ms=timeout_ms,
                require_visible=require_visible,
            ),
        )
        for candidate in candidates
    ]
    script_attempts = [(f"js:{fallback.name}", _js_attempt(page, fallback)) for fallback in fallbacks]
    ordered = script_attempts + selector_attempts if scripts_first else selector_attempts + script_attempts

    lookup = await first_match(ordered, logger=logger, description=description)
    if isinstance(lookup, Found):
        return lookup

    log_event(
        logger=logger,
        phase="selectors",
        status="warn",
        message="all strategies exhausted",
        target=description,
        tried=lookup.tried,
    )
    raise ElementNotFound(description, tried=lookup.tried)
