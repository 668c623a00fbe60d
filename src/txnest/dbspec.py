"""
Normalization of dbspecs: the values describing how to obtain a connection.

A dbspec is either a URI string, an already parsed URI, or a mapping. Strings
and URIs are turned into the mapping form understood by `txnest.open`::

    resolve_dbspec("postgresql://user:pw@localhost:5432/db")
    # {
    #     "subprotocol": "postgresql",
    #     "subname": "//localhost:5432/db",
    #     "classname": "txnest.driver.postgres.PostgresDriver",
    #     "user": "user",
    #     "password": "pw",
    # }
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Dict, Union
from urllib.parse import ParseResult, SplitResult, parse_qsl, unquote, urlsplit

from txnest.exception import ConfigurationError
from txnest.registry import DriverRegistry

DRIVER_PREFIX = re.compile(r"^(jdbc|dbapi):(?=[a-zA-Z][a-zA-Z0-9+.\-]*:)")
URI = Union[ParseResult, SplitResult]
DBSpec = Union[str, ParseResult, SplitResult, Mapping]


def strip_driver_prefix(url: str) -> str:
    """Remove an optional ``jdbc:`` or ``dbapi:`` prefix from a connection
    string"""
    return DRIVER_PREFIX.sub("", url.strip(), count=1)


def parse_properties_uri(uri: URI) -> Dict[str, Any]:
    """Decompose a parsed URI into a plain dbspec mapping"""
    scheme = uri.scheme.lower()
    if not scheme:
        raise ConfigurationError(f"dbspec URI {uri.geturl()} has no scheme")
    try:
        port = uri.port
    except ValueError as e:
        raise ConfigurationError(
            f"dbspec URI {uri.geturl()} has an invalid port"
        ) from e
    host = uri.hostname or ""
    subname = f"//{host}:{port}{uri.path}" if port else f"//{host}{uri.path}"
    spec: Dict[str, Any] = {
        "subprotocol": scheme,
        "subname": subname,
        "classname": DriverRegistry.classname(scheme),
    }
    if uri.username is not None:
        spec["user"] = unquote(uri.username)
        if uri.password is not None:
            spec["password"] = unquote(uri.password)
    for key, value in parse_qsl(uri.query):
        spec.setdefault(key, value)
    return spec


def resolve_dbspec(dbspec: DBSpec) -> Dict[str, Any]:
    """Turn any accepted dbspec shape into its mapping form"""
    if isinstance(dbspec, str):
        return parse_properties_uri(urlsplit(strip_driver_prefix(dbspec)))
    if isinstance(dbspec, (ParseResult, SplitResult)):
        return parse_properties_uri(dbspec)
    if isinstance(dbspec, Mapping):
        return dict(dbspec)
    raise ConfigurationError(
        f"dbspec of type {type(dbspec).__name__} is not supported. "
        "Use a URI string, a parsed URI or a mapping."
    )


def missing_parameter(spec: Mapping) -> str:
    """Name the parameter that keeps a dbspec mapping from being usable"""
    if "subprotocol" in spec and not spec.get("subname"):
        return "subname"
    if "subname" in spec and not spec.get("subprotocol"):
        return "subprotocol"
    return "subprotocol and subname, connection_uri, or datasource"
