import ipaddress


def is_valid_ip(value) -> bool:
    """True if value is an IPv4 or IPv6 literal (no DNS lookup)

    Scoped IPv6 literals (fe80::1%eth0) are refused: the zone id is local to
    the caller and its "%" would be re-quoted in the request path.
    """
    if not isinstance(value, str) or "%" in value:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True
