import re
from typing import List

# http(s):// followed by anything up to the next whitespace
LINK_REGEX = re.compile(r"https?://\S+")

# Regex to detect IP addresses (IPv4) used as the host
IP_REGEX = re.compile(r"^https?://(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")

# Common suspicious TLDs often used for abuse
SUSPICIOUS_TLDS = {
    ".xyz", ".top", ".download", ".review", ".country", ".stream",
    ".gdn", ".mom", ".pro", ".men", ".click", ".link", ".zip", ".mov",
}


def extract_links(text: str) -> List[str]:
    """
    Return every http(s) link in text, in order of appearance.

    Repeated links are kept; the scorer weighs each occurrence.
    """
    if not text:
        return []
    return LINK_REGEX.findall(text)


def is_suspicious_link(link: str) -> bool:
    """
    A link is suspicious when it isn't https, mentions "suspicious",
    or is on neither a .com nor a .org domain.
    """
    if not link.startswith("https://"):
        return True
    if "suspicious" in link:
        return True
    return ".com" not in link and ".org" not in link


def analyze_url_reputation(links: List[str]) -> List[str]:
    """
    Static reputation signals for a list of links, as human-readable
    warnings (e.g. "URL uses suspicious TLD: .xyz (evil.xyz)").
    """
    warnings = []
    for link in links:
        lower = link.lower()

        ip_match = IP_REGEX.search(lower)
        if ip_match:
            warnings.append(f"URL contains IP address: {ip_match.group(1)}")

        host = lower.split("://", 1)[-1].split("/")[0].split(":")[0]
        for tld in sorted(SUSPICIOUS_TLDS):
            if host.endswith(tld):
                warnings.append(f"URL uses suspicious TLD: {tld} ({host})")

    # Deduplicate, keep first-seen order
    return list(dict.fromkeys(warnings))
