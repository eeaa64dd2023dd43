"""Execute troubleshooting steps by dispatching on their StepAction."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from prompt_supply.models import StepAction, TroubleshootingStep

logger = logging.getLogger(__name__)

Handler = Callable[[], Awaitable[None] | None]
PayloadHandler = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class StepHandlers:
    """Caller-supplied callbacks. Missing handlers make the step a no-op."""

    retry: Handler | None = None
    use_cloud_bridge: Handler | None = None
    refresh: Handler | None = None
    open_link: PayloadHandler | None = None
    copy: PayloadHandler | None = None


async def _call(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


async def execute_step(step: TroubleshootingStep, handlers: StepHandlers) -> bool:
    """Run a step's action. Returns False when no handler could run it.

    ``mark-done`` steps are self-reported checkboxes and always succeed.
    """
    action = step.action
    if action == StepAction.MARK_DONE:
        return True

    if action in (StepAction.OPEN_LINK, StepAction.COPY):
        payload_handler = handlers.open_link if action == StepAction.OPEN_LINK else handlers.copy
        if payload_handler is None or not step.payload:
            logger.debug("No handler for '%s' step '%s'", action, step.title)
            return False
        await _call(payload_handler(step.payload))
        return True

    handler = {
        StepAction.RETRY: handlers.retry,
        StepAction.USE_CLOUD_BRIDGE: handlers.use_cloud_bridge,
        StepAction.REFRESH: handlers.refresh,
    }.get(action)
    if handler is None:
        logger.debug("No handler for '%s' step '%s'", action, step.title)
        return False
    await _call(handler())
    return True
