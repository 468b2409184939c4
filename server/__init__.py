"""Server package for tcp-diagtool.

Contains the connection-multiplexing server:
- registry: ClientRegistry
- outbound: OutboundQueue
- events: EventSink protocol and logging/console sinks
- loop: ServerLoop and ServerConfig
- shutdown: best-effort socket teardown

Note: TcpServer and run_server live in server.runner; import them from there.
"""

from server.events import ConsoleEventSink, EventSink, LoggingEventSink
from server.loop import ServerConfig, ServerLoop
from server.outbound import OutboundQueue
from server.registry import ClientRegistry, DuplicateIdentityError, UnknownIdentityError

__all__ = [
    "ClientRegistry",
    "ConsoleEventSink",
    "DuplicateIdentityError",
    "EventSink",
    "LoggingEventSink",
    "OutboundQueue",
    "ServerConfig",
    "ServerLoop",
    "UnknownIdentityError",
]
