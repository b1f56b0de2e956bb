"""
Translation memory backends.
"""

from .database import DatabaseTTMServer
from .elastic import ElasticTTMServer
from .fake import FakeWritableTTMServer
from .remote import RemoteTTMServer

__all__ = [
    "DatabaseTTMServer",
    "ElasticTTMServer",
    "FakeWritableTTMServer",
    "RemoteTTMServer",
]
