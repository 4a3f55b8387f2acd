"""Telecom circle enumeration and label normalisation.

HR exports and legacy data spell circle names in many ways ("UP (E)
Telecom Circle", "Calcutta Metro District", truncated 30-char labels...).
``normalize_circle_name`` folds all of them onto a :class:`Circle` value.
It is a pure function: no database or settings access.
"""
import re

from django.db import models


class Circle(models.TextChoices):
    ANDAMAN_NICOBAR = "ANDAMAN_NICOBAR", "Andaman & Nicobar"
    ANDHRA_PRADESH = "ANDHRA_PRADESH", "Andhra Pradesh"
    ASSAM = "ASSAM", "Assam"
    BIHAR = "BIHAR", "Bihar"
    CHHATTISGARH = "CHHATTISGARH", "Chhattisgarh"
    GUJARAT = "GUJARAT", "Gujarat"
    HARYANA = "HARYANA", "Haryana"
    HIMACHAL_PRADESH = "HIMACHAL_PRADESH", "Himachal Pradesh"
    JAMMU_KASHMIR = "JAMMU_KASHMIR", "Jammu & Kashmir"
    JHARKHAND = "JHARKHAND", "Jharkhand"
    KARNATAKA = "KARNATAKA", "Karnataka"
    KERALA = "KERALA", "Kerala"
    MADHYA_PRADESH = "MADHYA_PRADESH", "Madhya Pradesh"
    MAHARASHTRA = "MAHARASHTRA", "Maharashtra"
    NORTH_EAST_I = "NORTH_EAST_I", "North East I"
    NORTH_EAST_II = "NORTH_EAST_II", "North East II"
    ODISHA = "ODISHA", "Odisha"
    PUNJAB = "PUNJAB", "Punjab"
    RAJASTHAN = "RAJASTHAN", "Rajasthan"
    TAMIL_NADU = "TAMIL_NADU", "Tamil Nadu"
    TELANGANA = "TELANGANA", "Telangana"
    UTTARAKHAND = "UTTARAKHAND", "Uttarakhand"
    UTTAR_PRADESH_EAST = "UTTAR_PRADESH_EAST", "Uttar Pradesh (East)"
    UTTAR_PRADESH_WEST = "UTTAR_PRADESH_WEST", "Uttar Pradesh (West)"
    WEST_BENGAL = "WEST_BENGAL", "West Bengal"


DEFAULT_CIRCLE = Circle.KARNATAKA.value

# Order matters: the substring fallback walks this mapping top to bottom.
CIRCLE_ALIASES = {
    "andaman & nicobar": Circle.ANDAMAN_NICOBAR,
    "andaman and nicobar": Circle.ANDAMAN_NICOBAR,
    "andaman nicobar": Circle.ANDAMAN_NICOBAR,
    "andaman & nicobar telecom circ": Circle.ANDAMAN_NICOBAR,
    "andhra pradesh": Circle.ANDHRA_PRADESH,
    "andhra pradesh telecom circle": Circle.ANDHRA_PRADESH,
    "assam": Circle.ASSAM,
    "assam telecom circle": Circle.ASSAM,
    "bihar": Circle.BIHAR,
    "bihar telecom circle": Circle.BIHAR,
    "chhattisgarh": Circle.CHHATTISGARH,
    "chhattisgarh telecom circle": Circle.CHHATTISGARH,
    "gujarat": Circle.GUJARAT,
    "gujarat telecom circle": Circle.GUJARAT,
    "haryana": Circle.HARYANA,
    "haryana telecom circle": Circle.HARYANA,
    "himachal pradesh": Circle.HIMACHAL_PRADESH,
    "himachal pradesh telecom circl": Circle.HIMACHAL_PRADESH,
    "himachal pradesh telecom circle": Circle.HIMACHAL_PRADESH,
    "jammu kashmir": Circle.JAMMU_KASHMIR,
    "jammu & kashmir": Circle.JAMMU_KASHMIR,
    "jammu and kashmir": Circle.JAMMU_KASHMIR,
    "jammu kashmir telecom circle": Circle.JAMMU_KASHMIR,
    "jammu & kashmir telecom circle": Circle.JAMMU_KASHMIR,
    "jharkhand": Circle.JHARKHAND,
    "jharkhand telecom circle": Circle.JHARKHAND,
    "jharkand telecom circle": Circle.JHARKHAND,
    "karnataka": Circle.KARNATAKA,
    "karnataka telecom circle": Circle.KARNATAKA,
    "kerala": Circle.KERALA,
    "kerala telecom circle": Circle.KERALA,
    "madhya pradesh": Circle.MADHYA_PRADESH,
    "madhya pradesh telecom circle": Circle.MADHYA_PRADESH,
    "maharashtra": Circle.MAHARASHTRA,
    "maharashtra telecom circle": Circle.MAHARASHTRA,
    "north east i": Circle.NORTH_EAST_I,
    "north east 1": Circle.NORTH_EAST_I,
    "north east - i telecom circle": Circle.NORTH_EAST_I,
    "north east ii": Circle.NORTH_EAST_II,
    "north east 2": Circle.NORTH_EAST_II,
    "north east - ii telecom circle": Circle.NORTH_EAST_II,
    "odisha": Circle.ODISHA,
    "odisha telecom circle": Circle.ODISHA,
    "orissa": Circle.ODISHA,
    "punjab": Circle.PUNJAB,
    "punjab telecom circle": Circle.PUNJAB,
    "rajasthan": Circle.RAJASTHAN,
    "rajasthan telecom circle": Circle.RAJASTHAN,
    "tamil nadu": Circle.TAMIL_NADU,
    "tamil nadu telecom circle": Circle.TAMIL_NADU,
    "tamil nadu circle": Circle.TAMIL_NADU,
    "telangana": Circle.TELANGANA,
    "telangana telecom circle": Circle.TELANGANA,
    "uttarakhand": Circle.UTTARAKHAND,
    "uttarakhand telecom circle": Circle.UTTARAKHAND,
    "uttaranchal telecom circle": Circle.UTTARAKHAND,
    "uttaranchal": Circle.UTTARAKHAND,
    "uttar pradesh east": Circle.UTTAR_PRADESH_EAST,
    "uttar pradesh (east)": Circle.UTTAR_PRADESH_EAST,
    "up east": Circle.UTTAR_PRADESH_EAST,
    "up (e) telecom circle": Circle.UTTAR_PRADESH_EAST,
    "uttar pradesh west": Circle.UTTAR_PRADESH_WEST,
    "uttar pradesh (west)": Circle.UTTAR_PRADESH_WEST,
    "up west": Circle.UTTAR_PRADESH_WEST,
    "up (w) telecom circle": Circle.UTTAR_PRADESH_WEST,
    "west bengal": Circle.WEST_BENGAL,
    "west bengal telecom circle": Circle.WEST_BENGAL,
    "calcutta metro district": Circle.WEST_BENGAL,
    "calcutta": Circle.WEST_BENGAL,
    "kolkata": Circle.WEST_BENGAL,
    "sikkim": Circle.NORTH_EAST_I,
    "sikkim telecom circle": Circle.NORTH_EAST_I,
    "chennai metro district": Circle.TAMIL_NADU,
    "chennai": Circle.TAMIL_NADU,
    "core network(tx-east)  kolkatt": Circle.WEST_BENGAL,
    "core network(tx-ne region) ght": Circle.NORTH_EAST_I,
    "core network(tx-north)  delhi": Circle.UTTAR_PRADESH_WEST,
    "core network(tx-south) chennai": Circle.TAMIL_NADU,
    "core network(tx-west) mumbai": Circle.MAHARASHTRA,
    "corporate office": Circle.KARNATAKA,
    "alttc": Circle.KARNATAKA,
    "bbnw circle": Circle.KARNATAKA,
    "inspections": Circle.KARNATAKA,
    "itpc pune": Circle.MAHARASHTRA,
    "mtnl": Circle.MAHARASHTRA,
    "network for spectrum circle": Circle.KARNATAKA,
    "outside bsnl": Circle.KARNATAKA,
    "telecom factory jabalpur": Circle.MADHYA_PRADESH,
    "telecom factory kolkata": Circle.WEST_BENGAL,
    "telecom factory mumbai": Circle.MAHARASHTRA,
}

_SEPARATORS_RE = re.compile(r"[\s-]+")
_PARENS_RE = re.compile(r"[()]")


def is_valid_circle(value) -> bool:
    """Return True when *value* is one of the :class:`Circle` values."""
    return isinstance(value, str) and value in Circle.values


def match_circle_name(value):
    """Like :func:`normalize_circle_name` but return None when nothing matches."""
    if not value or not value.strip():
        return None

    normalized = value.lower().strip()
    if normalized in CIRCLE_ALIASES:
        return CIRCLE_ALIASES[normalized].value

    enum_shaped = _PARENS_RE.sub("", _SEPARATORS_RE.sub("_", value.upper()))
    if is_valid_circle(enum_shaped):
        return enum_shaped

    for alias, circle in CIRCLE_ALIASES.items():
        if alias in normalized or normalized in alias:
            return circle.value

    return None


def normalize_circle_name(value) -> str:
    """Map a free-form circle label to a :class:`Circle` value.

    Lookup order: exact alias, enum-shaped input ("uttar pradesh-east"
    becomes ``UTTAR_PRADESH_EAST``), substring match against the aliases
    in either direction, then :data:`DEFAULT_CIRCLE`.
    """
    return match_circle_name(value) or DEFAULT_CIRCLE
