"""Record hydration - related labels and details for display."""

from crmkit.hydration.hydrator import RecordHydrator
from crmkit.hydration.normalize import normalize_multi_relationship_value

__all__ = ["RecordHydrator", "normalize_multi_relationship_value"]
