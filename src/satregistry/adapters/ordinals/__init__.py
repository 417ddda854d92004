"""Public interface for the ord server adapter."""

from __future__ import annotations

from .client import OrdinalsClient, parse_sat_from_html
from .schema import InscriptionInfo, SatInscriptionsPage

__all__ = ["InscriptionInfo", "OrdinalsClient", "SatInscriptionsPage", "parse_sat_from_html"]
