from .http_source import HttpContentSource
from .remote_content import ContentSource, RemoteContent, RemoteContentService

__all__ = [
    "ContentSource",
    "HttpContentSource",
    "RemoteContent",
    "RemoteContentService",
]
