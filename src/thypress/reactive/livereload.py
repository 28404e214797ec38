"""Live reload — script injection and the server-sent event stream.

In dynamic mode every HTML response gets a small script that opens an
``EventSource`` on :data:`LIVE_RELOAD_ENDPOINT` and reloads the page on
a ``reload`` event.  The stream sends ``connected`` first, then a
keep-alive comment every 30 seconds while idle.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import TYPE_CHECKING

from thypress.reactive.broadcaster import ServerEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from thypress.reactive.broadcaster import Broadcaster

LIVE_RELOAD_ENDPOINT = "/__live_reload"
KEEP_ALIVE_SECONDS = 30.0
RECONNECT_MS = 2000

LIVE_RELOAD_SCRIPT = f"""\
<script data-thypress-live-reload>
(function() {{
  function connect() {{
    var source = new EventSource('{LIVE_RELOAD_ENDPOINT}');
    source.addEventListener('reload', function() {{
      console.log('[THYPRESS] Content updated, reloading...');
      location.reload();
    }});
    source.onerror = function() {{
      source.close();
      setTimeout(connect, {RECONNECT_MS});
    }};
  }}
  connect();
}})();
</script>
"""

# Marker used to detect an already-injected body
_MARKER = "data-thypress-live-reload"


def inject_live_reload(html: str) -> str:
    """Insert the live-reload script before ``</body>``, else ``</html>``, else append."""
    if _MARKER in html:
        return html
    for tag in ("</body>", "</html>"):
        index = html.rfind(tag)
        if index != -1:
            return html[:index] + LIVE_RELOAD_SCRIPT + html[index:]
    return html + LIVE_RELOAD_SCRIPT


def idle_timeout_from_env() -> float:
    """``THYPRESS_IDLE_TIMEOUT`` in seconds; 0 (the default) disables it."""
    raw = os.environ.get("THYPRESS_IDLE_TIMEOUT", "")
    try:
        return max(float(raw), 0.0) if raw else 0.0
    except ValueError:
        return 0.0


async def event_stream(
    broadcaster: Broadcaster,
    *,
    keep_alive: float = KEEP_ALIVE_SECONDS,
    idle_timeout: float = 0.0,
) -> AsyncIterator[str]:
    """Register a client and yield SSE frames until it disconnects.

    The client is deregistered when the generator is closed, which
    happens when the browser aborts the request.

    """
    client = broadcaster.register()
    last_event = time.monotonic()
    try:
        yield ServerEvent("connected").encode()
        while True:
            try:
                event = await asyncio.wait_for(client.queue.get(), timeout=keep_alive)
            except TimeoutError:
                if idle_timeout and time.monotonic() - last_event >= idle_timeout:
                    return
                yield ": keep-alive\n\n"
                continue
            last_event = time.monotonic()
            yield event.encode()
    finally:
        broadcaster.unregister(client)
