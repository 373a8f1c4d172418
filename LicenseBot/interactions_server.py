from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

import aiohttp
from aiohttp import web

from LicenseBot.bot_messages import BotMessages
from LicenseBot.license_lifecycle import ClientNotFoundError, LicenseLifecycle, MissingOptionError
from LicenseBot.license_sheet_store import SheetStoreError
from LicenseBot.settings import LicenseBotSettings
from shared.interaction_webhook_utils import verify_interaction_signature

log = logging.getLogger("license-bot")

# Discord interaction / response types
PING = 1
APPLICATION_COMMAND = 2
PONG = 1
CHANNEL_MESSAGE = 4
DEFERRED_CHANNEL_MESSAGE = 5


def parse_options(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for opt in (data or {}).get("options") or []:
        if isinstance(opt, dict) and opt.get("name"):
            out[str(opt["name"])] = opt.get("value")
    return out


def message_response(content: str) -> Dict[str, Any]:
    return {"type": CHANNEL_MESSAGE, "data": {"content": content}}


class InteractionHandler:
    """
    POST /interactions for the `validate` and `renew` slash commands.

    Every verified request gets exactly one response envelope. Commands that miss
    the reply deadline are answered with a deferred ack and finished in a tracked
    background task that edits the original response.
    """

    def __init__(self, settings: LicenseBotSettings, lifecycle: LicenseLifecycle, messages: BotMessages):
        self.settings = settings
        self.lifecycle = lifecycle
        self.messages = messages
        self._background: Set[asyncio.Task] = set()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/interactions", self.handle_interactions)
        app.router.add_get("/health", self.handle_health)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "ok": True,
            "background_tasks": len(self._background),
            "defer_responses": bool(self.settings.defer_responses),
        })

    async def handle_interactions(self, request: web.Request) -> web.Response:
        body = await request.read()
        ok, reason = verify_interaction_signature(request.headers, body, public_key=self.settings.public_key)
        if not ok:
            log.warning(f"[Interactions] Rejected request from {request.remote}: {reason}")
            return web.Response(status=401, text="invalid request signature")

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return web.json_response({"error": "invalid json"}, status=400)
        if not isinstance(payload, dict):
            return web.json_response({"error": "invalid json"}, status=400)

        if payload.get("type") == PING:
            return web.json_response({"type": PONG})
        if payload.get("type") != APPLICATION_COMMAND:
            return web.json_response({"error": "unsupported interaction type"}, status=400)

        command = self._track(asyncio.create_task(self.run_command(payload.get("data") or {})))
        deadline = 0.0 if self.settings.defer_responses else float(self.settings.response_deadline_s)
        if deadline > 0:
            await asyncio.wait({command}, timeout=deadline)
        if command.done():
            return web.json_response(message_response(command.result()))

        log.info("[Interactions] Command still running at reply deadline; deferring response")
        self._track(asyncio.create_task(self._follow_up(command, payload)))
        return web.json_response({"type": DEFERRED_CHANNEL_MESSAGE})

    async def run_command(self, data: Dict[str, Any]) -> str:
        """Execute one command and return the reply text. Never raises."""
        name = str((data or {}).get("name") or "").strip()
        options = parse_options(data)
        try:
            if name == "validate":
                record = await self.lifecycle.create(options.get("user"), options.get("proof"))
                return self.messages.render("validate_success", **self.lifecycle.template_values(record))
            if name == "renew":
                record = await self.lifecycle.renew(options.get("clientid"), options.get("proof"))
                return self.messages.render("renew_success", **self.lifecycle.template_values(record))
            return self.messages.render("unknown_command", command=name or "?")
        except MissingOptionError as e:
            return self.messages.render("missing_option", option=e.option)
        except ClientNotFoundError as e:
            return self.messages.render("client_not_found", client_id=e.client_id)
        except SheetStoreError as e:
            log.error(f"[Interactions] /{name} failed on the license sheet: {e}")
            return self.messages.render("retry")
        except Exception:
            log.exception(f"[Interactions] /{name} failed")
            return self.messages.render("retry")

    async def _follow_up(self, command: asyncio.Task, payload: Dict[str, Any]) -> None:
        content = await command
        application_id = str(payload.get("application_id") or self.settings.application_id or "").strip()
        token = str(payload.get("token") or "").strip()
        if not (application_id and token):
            log.error("[Interactions] Cannot edit deferred response: missing application id or interaction token")
            return
        url = f"{self.settings.discord_api_base}/webhooks/{application_id}/{token}/messages/@original"
        await self.edit_original_response(url, content)

    async def edit_original_response(self, url: str, content: str) -> None:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
            async with session.patch(url, json={"content": content}) as resp:
                if resp.status >= 400:
                    log.error(f"[Interactions] Editing deferred response failed: {resp.status} - {await resp.text()}")

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(f"[Interactions] Background task failed: {exc!r}")

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight commands/follow-ups, then cancel what is left."""
        pending = set(self._background)
        if not pending:
            return
        _, still = await asyncio.wait(pending, timeout=timeout)
        for task in still:
            task.cancel()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.drain()


async def start_http_server(handler: InteractionHandler, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(handler.build_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info(f"[HTTP] Interactions endpoint listening on {host}:{port}/interactions")
    return runner
