# src/netspamlock/geo.py
from dataclasses import dataclass

import requests

from netspamlock.config import DEFAULT_GEO_URL
from netspamlock.errors import LookupFailure
from netspamlock.utils.logger import get_logger

_logger = get_logger()

USER_AGENT = "NetSpamLock/2.0"
CSV_FIELDS = 11


@dataclass
class GeoInfo:
    ip: str
    country: str
    region: str
    city: str


def parse_geo_csv(body):
    """freegeoip CSV: ip,country_code,country,region_code,region,city,..."""
    fields = body.strip().split(",")
    if len(fields) != CSV_FIELDS:
        return None
    return GeoInfo(ip=fields[0], country=fields[2], region=fields[4], city=fields[5])


def fetch_geo(address, url_template=DEFAULT_GEO_URL, timeout=10, session=None):
    try:
        url = url_template.format(address=address)
    except (KeyError, IndexError, ValueError) as e:
        raise LookupFailure(f"Bad GEO url template {url_template!r}: {e!r}")
    getter = session or requests
    try:
        r = getter.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        raise LookupFailure(f"GEO lookup for {address} failed: {e}")
    return parse_geo_csv(r.text)


def lookup(address, url_template=DEFAULT_GEO_URL, timeout=10, session=None):
    """Like fetch_geo, but a failed request just means no data."""
    try:
        return fetch_geo(address, url_template, timeout, session)
    except LookupFailure as e:
        _logger.warning(f"[GEO] {e}")
        return None
