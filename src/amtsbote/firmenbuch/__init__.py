"""
amtsbote.firmenbuch
~~~~~~~~~~~~~~~~~~~
Austrian companies register (Firmenbuch): search, extracts, watchlist.

Usage::

    from amtsbote.firmenbuch import FirmenbuchClient, Watchlist

    client = FirmenbuchClient(api_key="...")
    print(client.extract("FN123456a").summary())

    wl = Watchlist()
    wl.add("FN123456a", firma="Muster GmbH")
    print(wl.check_all(client).to_dict())
"""

from .client import FirmenbuchClient
from .models import (
    FBAddress,
    FBExtract,
    FBPerson,
    FBSearchResponse,
    FBSearchResult,
    FBShareholder,
    FBStatus,
    Funktion,
    Rechtsform,
    VertretungsArt,
)
from .watchlist import Watchlist, WatchlistChange, WatchlistCheckResult, WatchlistEntry

__all__ = [
    "FBAddress",
    "FBExtract",
    "FBPerson",
    "FBSearchResponse",
    "FBSearchResult",
    "FBShareholder",
    "FBStatus",
    "FirmenbuchClient",
    "Funktion",
    "Rechtsform",
    "VertretungsArt",
    "Watchlist",
    "WatchlistChange",
    "WatchlistCheckResult",
    "WatchlistEntry",
]
