"""Reactive layer — change propagation and live reload.

Watcher events flow through the :class:`ChangePipeline` (the single
serialized mutator), which invalidates caches and tells connected
browsers to reload through the :class:`Broadcaster`.
"""

from thypress.reactive.broadcaster import Broadcaster, LiveReloadClient, ServerEvent
from thypress.reactive.livereload import LIVE_RELOAD_ENDPOINT, inject_live_reload
from thypress.reactive.pipeline import ChangePipeline, ChangeReport

__all__ = [
    "LIVE_RELOAD_ENDPOINT",
    "Broadcaster",
    "ChangePipeline",
    "ChangeReport",
    "LiveReloadClient",
    "ServerEvent",
    "inject_live_reload",
]
