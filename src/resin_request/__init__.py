from .client import (
    Capability,
    Download,
    FileTokenStore,
    HttpxTransport,
    InMemoryTokenStore,
    RequestClient,
    TokenStore,
    Transport,
)
from .errors import (
    ExpiredTokenError,
    InvalidOptionError,
    OptionError,
    RequestError,
    RequestTimeoutError,
    ResinRequestBaseError,
    TransportError,
    UnsupportedCapabilityError,
    UnsupportedOptionError,
)
from .settings import RequestSettings, load_settings
from .types import RequestDescriptor, ResponseEnvelope

__all__ = [
    "Capability",
    "Download",
    "ExpiredTokenError",
    "FileTokenStore",
    "HttpxTransport",
    "InMemoryTokenStore",
    "InvalidOptionError",
    "OptionError",
    "RequestClient",
    "RequestDescriptor",
    "RequestError",
    "RequestSettings",
    "RequestTimeoutError",
    "ResinRequestBaseError",
    "ResponseEnvelope",
    "TokenStore",
    "Transport",
    "TransportError",
    "UnsupportedCapabilityError",
    "UnsupportedOptionError",
    "load_settings",
]
