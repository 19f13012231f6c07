import math
from datetime import datetime, timedelta, timezone
from .base import ComparablesClient
from ..core.utils import fnv1a_32, seeded_rand
from ..core.config import settings
from ..schemas import PropertyFeaturePayload, SubjectPropertyInput
import httpx
from typing import List

METERS_PER_DEGREE_LAT = 111_320.0
RENOVATION_STATES = ("new", "renovated", "partial", "needs-renovation")
STREETS = ("רחוב הרצל", "שדרות רוטשילד", "רחוב ויצמן", "רחוב בן יהודה", "רחוב אבן גבירול")

class MockComparables(ComparablesClient):
    """
    Synthetic sales around the subject. Attributes are plausible but fake and
    fully determined by the subject's coordinates.
    """
    async def recent_sales(self, subject: SubjectPropertyInput, radius_m: float, limit: int) -> List[PropertyFeaturePayload]:
        seed = fnv1a_32(f"{subject.lat},{subject.lng}")
        out: List[PropertyFeaturePayload] = []
        now = datetime.now(timezone.utc)
        for i in range(limit):
            # Polar offset inside the radius
            dist = seeded_rand(seed+7*i, 1)[0] * radius_m
            theta = seeded_rand(seed+11*i, 1)[0] * 2 * math.pi
            lat = subject.lat + dist * math.cos(theta) / METERS_PER_DEGREE_LAT
            lng = subject.lng + dist * math.sin(theta) / (METERS_PER_DEGREE_LAT * math.cos(math.radians(subject.lat)))

            size = max(30.0, round(subject.size_sqm * (0.75 + seeded_rand(seed+13*i, 1)[0] * 0.5)))
            floor = max(0, int(subject.floor) + int(seeded_rand(seed+17*i, 1)[0] * 7) - 3)
            renovation = RENOVATION_STATES[int(seeded_rand(seed+19*i, 1)[0] * len(RENOVATION_STATES)) % len(RENOVATION_STATES)]
            # Price per m² around 30-45k NIS
            price_per_sqm = 30_000 + seeded_rand(seed+i*31, 1)[0] * 15_000
            age_days = int(seeded_rand(seed+i, 1)[0] * 3 * 365)

            out.append(PropertyFeaturePayload(
                id=f"mock-{seed:08x}-{i}",
                address=f"{STREETS[i % len(STREETS)]} {1 + int(seeded_rand(seed+23*i, 1)[0] * 120)}",
                city=subject.city,
                neighborhood=subject.neighborhood,
                lat=round(lat, 6),
                lng=round(lng, 6),
                property_type=subject.property_type if i % 4 else "apartment",
                size_sqm=size,
                floor=floor,
                building_age=int(seeded_rand(seed+29*i, 1)[0] * 60),
                condition_score=1 + round(seeded_rand(seed+37*i, 1)[0] * 9),
                has_elevator=floor > 2 or i % 3 == 0,
                has_parking=i % 2 == 0,
                has_balcony=i % 5 != 0,
                has_view=i % 7 == 0,
                noise_level=1 + round(seeded_rand(seed+41*i, 1)[0] * 9),
                renovation_state=renovation,
                planning_potential_score=round(seeded_rand(seed+43*i, 1)[0] * 10),
                sale_date=now - timedelta(days=age_days),
                sale_price=round(size * price_per_sqm, -3),
            ))
        # Most recent first
        out.sort(key=lambda c: c.sale_date, reverse=True)
        return out

class HttpComparables(ComparablesClient):
    """
    Client for a transactions microservice returning PropertyFeaturePayload JSON.
    """
    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    async def recent_sales(self, subject: SubjectPropertyInput, radius_m: float, limit: int) -> List[PropertyFeaturePayload]:
        async with httpx.AsyncClient(timeout=15, transport=self.transport) as client:
            r = await client.get(
                f"{self.base_url}/recent-sales",
                params={"lat": subject.lat, "lng": subject.lng, "city": subject.city,
                        "property_type": subject.property_type, "radius_m": radius_m, "limit": limit}
            )
            r.raise_for_status()
            return [PropertyFeaturePayload.model_validate(i) for i in r.json()]

def comparables_client() -> ComparablesClient:
    """
    Factory picks mock or http based on env flags.
    """
    if settings.COMPS_PROVIDER == "http" and settings.COMPS_BASE_URL:
        return HttpComparables(settings.COMPS_BASE_URL)
    return MockComparables()
