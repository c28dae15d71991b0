import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

# ------------------------------
# Constraint Definitions
# ------------------------------

@dataclass(frozen=True)
class Constraint:
    """A named predicate attached to a type descriptor.

    The predicate returns an error message when the value is rejected and
    None when it is accepted.
    """
    name: str
    predicate: Callable[[Any], Optional[str]]
    description: str = ""

    def check(self, value: Any) -> Optional[str]:
        return self.predicate(value)


def custom(name: str, fn: Callable[[Any], bool], message: str) -> Constraint:
    """Wrap a boolean function as a constraint; `message` may use {value}"""
    def predicate(value):
        if fn(value):
            return None
        return message.format(value=value)
    return Constraint(name, predicate, message)


# Numeric bounds are inclusive

def gteq(minimum: float) -> Constraint:
    def predicate(value):
        if value < minimum:
            return f"must be greater than or equal to {minimum}, got {value}"
        return None
    return Constraint("gteq", predicate, f">= {minimum}")


def lteq(maximum: float) -> Constraint:
    def predicate(value):
        if value > maximum:
            return f"must be less than or equal to {maximum}, got {value}"
        return None
    return Constraint("lteq", predicate, f"<= {maximum}")


def between(minimum: float, maximum: float) -> Constraint:
    def predicate(value):
        if value < minimum or value > maximum:
            return f"must be between {minimum} and {maximum}, got {value}"
        return None
    return Constraint("between", predicate, f"{minimum}..{maximum}")


def min_length(minimum: int) -> Constraint:
    def predicate(value):
        if len(value) < minimum:
            return f"must be at least {minimum} characters long, got {len(value)}"
        return None
    return Constraint("min_length", predicate, f"len >= {minimum}")


def max_length(maximum: int) -> Constraint:
    def predicate(value):
        if len(value) > maximum:
            return f"must be at most {maximum} characters long, got {len(value)}"
        return None
    return Constraint("max_length", predicate, f"len <= {maximum}")


def length_between(minimum: int, maximum: int) -> Constraint:
    def predicate(value):
        if len(value) < minimum or len(value) > maximum:
            return f"must be {minimum}-{maximum} characters long, got {len(value)}"
        return None
    return Constraint("length_between", predicate, f"len {minimum}..{maximum}")


def min_items(minimum: int) -> Constraint:
    def predicate(value):
        if len(value) < minimum:
            return f"must contain at least {minimum} item(s), got {len(value)}"
        return None
    return Constraint("min_items", predicate, f"items >= {minimum}")


def max_items(maximum: int) -> Constraint:
    def predicate(value):
        if len(value) > maximum:
            return f"must contain at most {maximum} item(s), got {len(value)}"
        return None
    return Constraint("max_items", predicate, f"items <= {maximum}")


def pattern(regex: str, message: Optional[str] = None) -> Constraint:
    compiled = re.compile(regex)

    def predicate(value):
        if compiled.fullmatch(value):
            return None
        if message:
            return message.format(value=value)
        return f"'{value}' does not match format {regex}"
    return Constraint("format", predicate, regex)


def one_of(values: Iterable[Any]) -> Constraint:
    allowed = tuple(values)

    def predicate(value):
        if value in allowed:
            return None
        return f"must be one of: {', '.join(map(str, allowed))}, got '{value}'"
    return Constraint("included_in", predicate, ", ".join(map(str, allowed)))


# ------------------------------
# Shared validators
# ------------------------------

_INTERPOLATION = re.compile(r"\$\{.+\}")
_CIDR = re.compile(r"(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})/(\d{1,2})")
_IPV6_CIDR = re.compile(r"[0-9a-fA-F:]+/\d{1,3}")
_IPV4 = re.compile(r"(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)")
_REGION = re.compile(r"[a-z]{2}-[a-z]+-\d")
_AZ = re.compile(r"[a-z]{2}-[a-z]+-\d[a-z]")
_DOMAIN = re.compile(r"(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?", re.IGNORECASE)
_WILDCARD_DOMAIN = re.compile(r"(\*\.)?(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?", re.IGNORECASE)
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_BASE64 = re.compile(r"[A-Za-z0-9+/]*={0,2}")


def is_interpolation(value: Any) -> bool:
    """True if value is a whole-string Terraform interpolation such as ${aws_vpc.main.id}"""
    return isinstance(value, str) and _INTERPOLATION.fullmatch(value) is not None


def _check_cidr(value: str) -> Optional[str]:
    match = _CIDR.fullmatch(value)
    if not match:
        return f"Invalid CIDR format: {value}"
    octets = [int(part) for part in match.groups()[:4]]
    if not all(0 <= octet <= 255 for octet in octets):
        return f"Invalid IP address in CIDR: {value}"
    if not 0 <= int(match.group(5)) <= 32:
        return f"Invalid prefix length (0-32): {value}"
    return None


def cidr_block() -> Constraint:
    return Constraint("cidr_block", _check_cidr, "IPv4 CIDR block")


def ipv6_cidr_block() -> Constraint:
    def predicate(value):
        if not _IPV6_CIDR.fullmatch(value) or ':' not in value:
            return f"Invalid IPv6 CIDR format: {value}"
        if int(value.rsplit('/', 1)[1]) > 128:
            return f"Invalid prefix length (0-128): {value}"
        return None
    return Constraint("ipv6_cidr_block", predicate, "IPv6 CIDR block")


def port() -> Constraint:
    def predicate(value):
        if not 0 <= value <= 65535:
            return f"Port must be 0-65535, got: {value}"
        return None
    return Constraint("port", predicate, "0..65535")


def aws_region() -> Constraint:
    return pattern(_REGION.pattern, "Invalid AWS region format: {value}")


def aws_availability_zone() -> Constraint:
    return pattern(_AZ.pattern, "Invalid AWS AZ format: {value}")


def domain_name(allow_wildcard: bool = False) -> Constraint:
    regex = _WILDCARD_DOMAIN if allow_wildcard else _DOMAIN

    def predicate(value):
        if regex.fullmatch(value):
            return None
        return f"Invalid domain name: {value}"
    return Constraint("domain_name", predicate, "domain name")


def email() -> Constraint:
    return pattern(_EMAIL.pattern, "Invalid email format: {value}")


def arn(service: Optional[str] = None) -> Constraint:
    if service:
        regex = rf"arn:aws:{re.escape(service)}:[a-z0-9-]*:\d{{12}}:.+"
    else:
        regex = r"arn:aws:[a-z0-9-]+:[a-z0-9-]*:\d{12}:.+"
    return pattern(regex, "Invalid ARN format: {value}")


def json_document() -> Constraint:
    def predicate(value):
        try:
            json.loads(value)
        except json.JSONDecodeError:
            return f"Invalid JSON: {value[:50]}..."
        return None
    return Constraint("json", predicate, "JSON document")


def base64_string() -> Constraint:
    def predicate(value):
        if not _BASE64.fullmatch(value):
            return "Invalid base64 format"
        try:
            base64.b64decode(value, validate=True)
        except binascii.Error:
            return "Invalid base64 encoding"
        return None
    return Constraint("base64", predicate, "base64 string")


def hex_string(length: int, allow_interpolation: bool = True) -> Constraint:
    regex = re.compile(rf"[a-f0-9]{{{length}}}", re.IGNORECASE)

    def predicate(value):
        if allow_interpolation and is_interpolation(value):
            return None
        if regex.fullmatch(value):
            return None
        return f"Expected {length}-char hex string: {value}"
    return Constraint("hex", predicate, f"{length}-char hex")


def public_ip_address() -> Constraint:
    def predicate(value):
        if not _IPV4.fullmatch(value):
            return f"Invalid IPv4 address: {value}"
        first, second = (int(part) for part in value.split('.')[:2])
        if first == 10:
            return "IP address cannot be in private range 10.0.0.0/8"
        if first == 172 and 16 <= second <= 31:
            return "IP address cannot be in private range 172.16.0.0/12"
        if first == 192 and second == 168:
            return "IP address cannot be in private range 192.168.0.0/16"
        return None
    return Constraint("public_ip", predicate, "public IPv4 address")
