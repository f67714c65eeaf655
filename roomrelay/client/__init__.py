"""Participant-side mesh negotiation."""
from .connection import AiortcConnection, AiortcConnectionFactory, PeerConnection
from .coordinator import MeshStatus, PeerMeshCoordinator
from .peer_link import LinkRole, LinkState, PeerLink
from .session import MeshClient

__all__ = [
    "AiortcConnection",
    "AiortcConnectionFactory",
    "LinkRole",
    "LinkState",
    "MeshClient",
    "MeshStatus",
    "PeerConnection",
    "PeerLink",
    "PeerMeshCoordinator",
]
