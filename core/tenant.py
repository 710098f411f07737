"""
Tenant resolution for multi-subdomain routing.

Subdomains map to fund slugs: ``martha-fund.blackgem.ai`` -> ``Fund.slug == "martha-fund"``.
The organization is inferred from the fund.
"""

from __future__ import annotations

from typing import Optional

from core.config import ROOT_DOMAIN

_LOCAL_HOSTS = ("localhost", "127.0.0.1")


def _strip_port(hostname: str) -> str:
    return hostname.split(":")[0].lower()


def extract_subdomain(hostname: Optional[str], root_domain: str = ROOT_DOMAIN) -> Optional[str]:
    """
    Extract the tenant subdomain from a Host header.

    "martha-fund.blackgem.ai" -> "martha-fund"
    "blackgem.ai", "www.blackgem.ai", "localhost:8000" -> None
    """
    if not hostname:
        return None
    host = _strip_port(hostname)
    if host in _LOCAL_HOSTS:
        return None
    suffix = f".{root_domain}"
    if not host.endswith(suffix):
        return None
    subdomain = host[: -len(suffix)]
    if not subdomain or subdomain == "www":
        return None
    return subdomain


def is_root_domain(hostname: Optional[str], root_domain: str = ROOT_DOMAIN) -> bool:
    if not hostname:
        return True
    host = _strip_port(hostname)
    if host in _LOCAL_HOSTS:
        return True
    if host in (root_domain, f"www.{root_domain}"):
        return True
    return not host.endswith(f".{root_domain}")
