from typing import Protocol, List

from ..schemas import PropertyFeaturePayload, SubjectPropertyInput

# ----- Protocols (interfaces) -----

class ComparablesClient(Protocol):
    """
    Supplier of raw sale transactions around a subject (government
    transaction feeds or equivalent). Entries are expected to have passed
    basic sanity filtering (positive price/area) already.
    """
    async def recent_sales(
        self, subject: SubjectPropertyInput, radius_m: float, limit: int
    ) -> List[PropertyFeaturePayload]: ...
