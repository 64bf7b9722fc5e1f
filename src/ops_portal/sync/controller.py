from __future__ import annotations

import json
import queue

from flask import Flask, Response, stream_with_context

from ..common.web import json_action, login_required, ok
from ..core.constants import SSE_KEEPALIVE_SECONDS, SYNC_TRIGGER_KEY
from ..container import Container


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def register(app: Flask, container: Container) -> None:
    channel = container.channel

    @app.route("/api/sync/events", methods=["GET"], endpoint="sync_events")
    @login_required
    def sync_events():
        inbox: "queue.Queue" = queue.Queue()
        unsubscribe = channel.subscribe(inbox.put)

        def stream():
            try:
                yield _sse("ready", {"channel": channel.name})
                while True:
                    try:
                        message = inbox.get(timeout=SSE_KEEPALIVE_SECONDS)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield _sse(message.type, message.as_dict())
            finally:
                unsubscribe()

        return Response(
            stream_with_context(stream()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/api/sync/trigger", methods=["GET"], endpoint="sync_trigger")
    @login_required
    @json_action("Failed to read sync state")
    def sync_trigger():
        return ok({SYNC_TRIGGER_KEY: channel.last_trigger, "listeners": channel.listener_count})
