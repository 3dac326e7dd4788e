import tldextract
from urllib.parse import urlparse

# Offline extractor: the bundled public suffix snapshot is enough for matching
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def base_url_for(domain: str, canonical_url: str = None) -> str:
    """
    Root URL used for probing a target:
    - the canonical URL when present, trailing slash stripped
    - otherwise https://<domain>
    """
    url = (canonical_url or "").strip()
    if not url:
        domain = (domain or "").strip()
        if not domain:
            return ""
        url = domain if "://" in domain else f"https://{domain}"
    return url.rstrip("/")


def make_absolute(href: str, page_url: str) -> str:
    """
    Resolve a link found on the homepage:
    - absolute http(s) links are kept
    - protocol-relative links take the homepage scheme
    - relative and root-relative links resolve against scheme://host
    """
    href = (href or "").strip()
    if href.lower().startswith(("http://", "https://")):
        return href

    p = urlparse(page_url)
    scheme = p.scheme or "https"

    if href.startswith("//"):
        return f"{scheme}:{href}"

    root = f"{scheme}://{p.netloc}"
    if href.startswith("/"):
        return root + href
    return root + "/" + href


def host_key(url: str) -> str:
    """Lower-cased netloc, the key of per-host throttling."""
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return ""


def registered_domain(value: str) -> str:
    """
    Registrable domain of a URL or bare host (e.g. www.agency.co.uk -> agency.co.uk).
    Used to match operator input against monitored targets.
    """
    if not value:
        return ""
    ext = _EXTRACT(value.strip().lower())
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return ext.domain or value.strip().lower()
