from .options import TransportOptions, translate_options
from .request import Download, RequestClient
from .token import FileTokenStore, InMemoryTokenStore, TokenGate, TokenStore
from .transport import Capability, HttpxTransport, StreamingTransport, Transport, invoke_transport

__all__ = [
    "Capability",
    "Download",
    "FileTokenStore",
    "HttpxTransport",
    "InMemoryTokenStore",
    "RequestClient",
    "StreamingTransport",
    "TokenGate",
    "TokenStore",
    "Transport",
    "TransportOptions",
    "invoke_transport",
    "translate_options",
]
