"""
Registry distribution client.

Implements the subset of the Registry HTTP API V2 needed to push an image
archive: auth probe, blob existence checks, monolithic blob uploads and
manifest publication.
"""
from .client import PushResult, RegistryClient
from .coordinate import RepositoryCoordinate, parse_coordinate, service_identifier, validate_tag
from .transport import RegistryTransport

__all__ = [
    "PushResult",
    "RegistryClient",
    "RegistryTransport",
    "RepositoryCoordinate",
    "parse_coordinate",
    "service_identifier",
    "validate_tag",
]
