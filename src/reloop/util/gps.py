from __future__ import annotations

import math
from typing import Dict, Optional


def parse_gps(raw: Optional[str]) -> Optional[Dict[str, float]]:
    """Parse a "lat, lng" string into {"lat": .., "lng": ..}.

    Returns None for blank, malformed or out-of-range input. Locations are
    stored verbatim; this is only used for rendering.
    """
    s = str(raw or "").strip()
    if not s or "," not in s:
        return None

    a, b = s.split(",", 1)
    try:
        lat = float(a.strip())
        lng = float(b.strip())
    except ValueError:
        return None

    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if abs(lat) > 90.0 or abs(lng) > 180.0:
        return None
    return {"lat": lat, "lng": lng}
