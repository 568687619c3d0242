"""Property type categories.

Two static tables shared by the feed query builder and the record
transformer:

* :data:`RESIDENTIAL_SUBTYPES` — the residential category filter.  Only
  listings whose ``PropertySubType`` *or* ``PropertyType`` is one of these
  values are replicated.  The order matters: it is the order of the ``or``
  clauses in the upstream ``$filter``.
* :data:`PROPERTY_TYPE_MAP` — maps raw subtype/type strings to the closed set
  of categories exposed to the app.  Downstream consumers depend on the exact
  category names, so the table must not be edited casually.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

__all__ = [
    "RESIDENTIAL_SUBTYPES",
    "PROPERTY_TYPE_MAP",
    "DEFAULT_PROPERTY_TYPE",
    "normalise_property_type",
]

logger = logging.getLogger(__name__)

RESIDENTIAL_SUBTYPES: Final[tuple[str, ...]] = (
    "Residential",
    "Residential Detached",
    "Single Family Residence",
    "Detached",
    "Townhouse",
    "Att/Row/Townhouse",
    "Duplex",
    "Triplex",
    "Quadruplex",
    "Multi Family",
    "Condominium",
    "Condo Apt",
    "Co-Ownership",
    "Own Your Own",
    "Stock Cooperative",
    "Apartment",
)

DEFAULT_PROPERTY_TYPE: Final[str] = "Other"

PROPERTY_TYPE_MAP: Final[Mapping[str, str]] = MappingProxyType(
    {
        # Detached / single family
        "Single Family Residence": "Detached",
        "Detached": "Detached",
        "Residential": "Detached",
        "Residential Detached": "Detached",
        # Attached
        "Townhouse": "Townhouse",
        "Att/Row/Townhouse": "Townhouse",
        "Duplex": "Multi-Family",
        "Triplex": "Multi-Family",
        "Quadruplex": "Multi-Family",
        "Multi Family": "Multi-Family",
        # Condos / apartments
        "Condominium": "Condo",
        "Condo Apt": "Condo",
        "Co-Ownership": "Condo",
        "Own Your Own": "Condo",
        "Stock Cooperative": "Condo",
        "Apartment": "Condo",
        # Specialty
        "Cabin": "Specialty Residential",
        "Ranch": "Specialty Residential",
        "Farm": "Rural Residential",
        "Agriculture": "Rural Residential",
    }
)


def normalise_property_type(
    sub_type: str | None = None,
    property_type: str | None = None,
) -> str:
    """Return the app category for a listing.

    The subtype wins over the type when both are present; an empty subtype
    string still wins (mirrors the upstream null-coalescing rule).  Lookup is
    exact after stripping surrounding whitespace.

    Examples::

        normalise_property_type("Condo Apt")          # → "Condo"
        normalise_property_type(None, "Townhouse")    # → "Townhouse"
        normalise_property_type("")                   # → "Other"
        normalise_property_type("Unknown Thing")      # → "Other"
    """
    raw = sub_type if sub_type is not None else property_type
    key = (raw or "").strip()
    if not key:
        return DEFAULT_PROPERTY_TYPE
    return PROPERTY_TYPE_MAP.get(key, DEFAULT_PROPERTY_TYPE)
