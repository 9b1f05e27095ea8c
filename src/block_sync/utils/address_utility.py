"""
Address normalization helpers.

Every address comparison in block-sync goes through ``normalize_address`` so
that checksummed, lowercase and 32-byte topic-padded spellings of one address
compare equal.
"""

ADDRESS_HEX_LENGTH = 40


def normalize_address(value: str | bytes | None) -> str:
    """
    Reduce an address or address-bearing topic to its canonical form.

    The canonical form is the lowercase hex of the last 20 bytes with no 0x
    prefix. Topic values padded to 32 bytes collapse to the address they
    carry; shorter values are returned lowercased and unpadded.

    :param value: Address, padded topic, bytes, or None
    :return: Canonical lowercase hex string ('' for None/empty input)
    """
    if not value:
        return ''
    if isinstance(value, (bytes, bytearray)):
        value = value.hex()
    hex_str = value.strip().lower()
    if hex_str.startswith('0x'):
        hex_str = hex_str[2:]
    if len(hex_str) > ADDRESS_HEX_LENGTH:
        hex_str = hex_str[-ADDRESS_HEX_LENGTH:]
    return hex_str


def addresses_equal(left: str | bytes | None, right: str | bytes | None) -> bool:
    """Case-insensitive, padding-insensitive address equality."""
    canonical = normalize_address(left)
    return bool(canonical) and canonical == normalize_address(right)


def topic_matches_address(topic: str | bytes | None, address: str | None) -> bool:
    """
    Check whether a log topic carries the given address.

    Topics are left-padded to 32 bytes, so the comparison is a suffix match of
    the normalized address against the normalized topic.

    :param topic: Indexed topic value (hex string or bytes)
    :param address: Account address in any case, with or without 0x
    :return: True if the topic ends with the address
    """
    needle = normalize_address(address)
    if not needle or not topic:
        return False
    if isinstance(topic, (bytes, bytearray)):
        topic = topic.hex()
    haystack = topic.lower()
    if haystack.startswith('0x'):
        haystack = haystack[2:]
    return haystack.endswith(needle)
