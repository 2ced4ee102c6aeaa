from __future__ import annotations

from typing import Optional

# Short filter keys mapped to the provider names reported by the feed.
LAUNCH_AGENCIES: dict[str, str] = {
    "arianespace": "Arianespace",
    "astra": "Astra Space",
    "blueorigin": "Blue Origin",
    "casc": "China Aerospace Science and Technology Corporation",
    "casic": "China Aerospace Science and Industry Corporation",
    "esa": "European Space Agency",
    "expace": "ExPace",
    "firefly": "Firefly Aerospace",
    "galacticenergy": "Galactic Energy",
    "isro": "Indian Space Research Organization",
    "ispace": "i-Space",
    "jaxa": "Japan Aerospace Exploration Agency",
    "landspace": "LandSpace",
    "mhi": "Mitsubishi Heavy Industries",
    "nasa": "National Aeronautics and Space Administration",
    "northrop": "Northrop Grumman Space Systems",
    "relativity": "Relativity Space",
    "rocketlab": "Rocket Lab Ltd",
    "roscosmos": "Russian Federal Space Agency (ROSCOSMOS)",
    "spacex": "SpaceX",
    "ula": "United Launch Alliance",
    "virginorbit": "Virgin Orbit",
}


def resolve_agency(key: str, agencies: Optional[dict[str, str]] = None) -> str:
    """Map a filter key to its provider name; unknown keys map to themselves."""
    table = LAUNCH_AGENCIES if agencies is None else agencies
    return table.get(key.strip().lower(), key)
