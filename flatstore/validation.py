import ipaddress
import re

from flatstore.errors import InvalidKey, InvalidName

BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9.-]{3,63}$")
OBJECT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,255}$")


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def validate_bucket_name(name: str) -> None:
    """
    Checks a bucket name against the S3-style naming rules.
    Raises InvalidName with the violated rule as its message.
    """
    if not BUCKET_NAME_PATTERN.fullmatch(name):
        raise InvalidName(
            "bucket name must be between 3 and 63 characters and can only contain "
            "lowercase letters, numbers, hyphens, and periods"
        )
    if name.startswith("-") or name.endswith("-"):
        raise InvalidName("bucket name must not begin or end with a hyphen")
    if "--" in name or ".." in name:
        raise InvalidName("bucket name must not contain two consecutive periods or dashes")
    if _is_ip_address(name):
        raise InvalidName("bucket name must not be formatted as an IP address")


def validate_object_key(key: str) -> None:
    # No '/' allowed, so a key always names a file directly inside its bucket directory
    if not OBJECT_KEY_PATTERN.fullmatch(key):
        raise InvalidKey(
            "object key must be 1-255 characters long and can only contain letters, "
            "numbers, underscores, hyphens, and periods"
        )
    if key in (".", ".."):
        raise InvalidKey("object key must not be a relative directory reference")


def is_valid_bucket_name(name: str) -> bool:
    try:
        validate_bucket_name(name)
    except InvalidName:
        return False
    return True


def is_valid_object_key(key: str) -> bool:
    try:
        validate_object_key(key)
    except InvalidKey:
        return False
    return True
