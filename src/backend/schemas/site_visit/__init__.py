"""Site visit schemas package."""
from .site_visit import EngineerRead, SiteVisitRead, SiteVisitRequestRead

__all__ = ["EngineerRead", "SiteVisitRead", "SiteVisitRequestRead"]
