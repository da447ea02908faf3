"""
Mobile Emitter Blacklist.

WiFi access points that travel with their owner (phone tethering, in-car
hotspots, transit WiFi) poison the coverage model: they are seen everywhere
and their learned coverage grows without bound. The note field carries the
SSID, and some SSIDs give the game away.

Matching is on the SSID text only; a false positive merely loses one
emitter, a false negative is eventually caught by move detection.
"""

import logging

from rfloc_core.proto import EmitterKind, RfIdentification

logger = logging.getLogger(__name__)


# Lowercase substring anywhere in the SSID
_CONTAINS = (
    'android',              # Phone tethering
    'ipad',
    'iphone',
    'motorola',
    'mobile hotspot',       # "MetroPCS Portable Mobile Hotspot"
    ' uconnect ',           # Chrysler-Fiat vehicles
    'admin@ms ',            # Hurtigruten ships
    'guest@ms ',
    'contiki-wifi',         # Buses
    'db ic bus',
    'deinbus.de',
    'ecolines',
    'eurolines_wifi',
    'fernbus',
    'flixbus',
    'muenchenlinie',
    'postbus',
    'telekom_ice',          # DB trains
    'mobile',
    'nsb_interakti',
)

# Lowercase prefix
_STARTS_WITH_LOWER = (
    'moto ',                # "Moto E (4) 9509"
    'lg aristo',
    'wifi hotspot ',        # GM vehicle default
    'mb wlan ',             # Mercedes
)

# Case-sensitive prefix
_STARTS_WITH = (
    'MOTO',                 # "MOTO9564"
    'Samsung Galaxy',
    'CellSpot',             # T-Mobile portable hotspot
    'Verizon-',
    'Audi',
    'Chevy ',
    'GMC WiFi',
    'MyVolvo',
    'BusWiFi',
    'CoachAmerica',
    'DisneyLandResortExpress',
    'TaxiLinQ',
    'TransitWirelessWiFi',
    'YICarCam',             # Dash cam
)

# Lowercase suffix ("first_name vehicle_model" renames of GM defaults)
_ENDS_WITH = (
    ' phone',
    'corvette',
    'silverado',
    'chevy',
    'truck',
    'suburban',
    'terrain',
    'sierra',
)

# Whole SSID, lowercase
_EQUALS = (
    'amtrak',
    'amtrakconnect',
    'megabus',
)


def mac_suffix(bssid: str) -> str:
    """
    Last three octets of a BSSID without separators, lowercase.

    Many vehicles default their SSID to this value.

    Args:
        bssid: MAC address, e.g. "00:11:22:aa:bb:cc"

    Returns:
        e.g. "aabbcc"
    """
    return bssid[-8:].lower().replace(':', '')


def is_mobile_ssid(bssid: str, ssid: str) -> bool:
    """
    True if a WiFi SSID looks like a mobile access point.

    Args:
        bssid: Access point MAC address
        ssid: Network name
    """
    if not ssid:
        return False

    lc = ssid.lower()

    if lc == mac_suffix(bssid):
        return True
    if lc in _EQUALS:
        return True
    if any(pattern in lc for pattern in _CONTAINS):
        return True
    if lc.startswith(_STARTS_WITH_LOWER) or ssid.startswith(_STARTS_WITH):
        return True
    return lc.endswith(_ENDS_WITH)


def should_blacklist(identification: RfIdentification, note: str) -> bool:
    """
    Decide whether an emitter must be excluded from positioning.

    Cell towers are never blacklisted; WiFi emitters are checked against
    the SSID heuristics.

    Args:
        identification: Emitter identity
        note: Current note (SSID for WiFi)

    Returns:
        True if the emitter should be blacklisted
    """
    if identification.kind == EmitterKind.MOBILE:
        return False

    if identification.kind.is_wlan and is_mobile_ssid(identification.rf_id, note):
        logger.debug(f"Blacklisting {identification} (ssid={note!r})")
        return True

    return False
