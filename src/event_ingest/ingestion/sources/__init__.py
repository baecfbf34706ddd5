"""
Source adapters.

Importing this package registers every adapter with the factory.
"""

from .artscentre import ArtsCentreAdapter
from .feverup import FeverUpAdapter
from .marriner import MarrinerAdapter
from .ticketmaster import TicketmasterAdapter
from .whatson import WhatsOnAdapter

__all__ = [
    "ArtsCentreAdapter",
    "FeverUpAdapter",
    "MarrinerAdapter",
    "TicketmasterAdapter",
    "WhatsOnAdapter",
]
