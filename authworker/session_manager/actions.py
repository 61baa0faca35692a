"""Non-login task scripts run on an already signed-in browser session."""

from __future__ import annotations

import logging
import sys
from typing import Any

from ..config import HUMAN_PACE
from ..constants import SELECTORS
from ..errors import AuthWorkerError
from ..models.task import Task
from .browser import PageDriver, human_delay

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def _require_target(task: Task) -> str:
    url = task.target_url
    if not url:
        raise AuthWorkerError("No profile URL provided")
    return url


async def view_profile(page: PageDriver, task: Task, pace: float = HUMAN_PACE) -> dict[str, Any]:
    url = _require_target(task)
    await page.navigate(url, wait_until="domcontentloaded")
    await human_delay(3000, 6000, pace)
    await page.scroll()
    return {"success": True, "message": "Profile viewed"}


async def send_connection(page: PageDriver, task: Task, pace: float = HUMAN_PACE) -> dict[str, Any]:
    """Send a connection request, with the payload ``message`` as note if given."""
    url = _require_target(task)
    await page.navigate(url, wait_until="domcontentloaded")
    await human_delay(2000, 4000, pace)

    connect = await page.find_visible(SELECTORS["connect_button"])
    if connect is None:
        logger.info(f"Connect button not found on {url}")
        return {"success": False, "message": "Connect button not found"}

    await page.click(connect)
    await human_delay(1000, 2000, pace)

    note = task.payload.get("message")
    if note:
        add_note = await page.find_visible(SELECTORS["add_note_button"])
        if add_note is not None:
            await page.click(add_note)
            await human_delay(500, 1000, pace)
            textarea = await page.find_visible(SELECTORS["note_textarea"], timeout_ms=2000)
            if textarea is not None:
                await page.type(textarea, note)

    send = await page.find_visible(SELECTORS["send_button"])
    if send is not None:
        await page.click(send)
    return {"success": True, "message": "Connection request sent"}


async def send_message(page: PageDriver, task: Task, pace: float = HUMAN_PACE) -> dict[str, Any]:
    url = _require_target(task)
    message = task.payload.get("message")
    if not message:
        raise AuthWorkerError("No message provided")

    await page.navigate(url, wait_until="domcontentloaded")
    await human_delay(2000, 4000, pace)

    button = await page.find_visible(SELECTORS["message_button"])
    if button is None:
        return {"success": False, "message": "Message button not found"}

    await page.click(button)
    await human_delay(1000, 2000, pace)

    editor = await page.find_visible(SELECTORS["message_editor"], timeout_ms=5000)
    if editor is None:
        return {"success": False, "message": "Message editor not found"}
    await page.type(editor, message)
    await human_delay(500, 1000, pace)

    send = await page.find_visible(SELECTORS["message_send"])
    if send is None:
        return {"success": False, "message": "Message send button not found"}
    await page.click(send)
    return {"success": True, "message": "Message sent"}


TASK_SCRIPTS = {
    "view_profile": view_profile,
    "send_connection": send_connection,
    "send_message": send_message,
}
