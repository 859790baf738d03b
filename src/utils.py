#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Utility functions for the ingress route translator.

This module contains constants, exception classes, route ordering and lookup helpers.
Functions here are source-agnostic and work on normalized Route models.
"""
from typing import Dict, Iterable, List, Tuple

from lightkube.resources.networking_v1 import Ingress

from models import Route, RouteID


# ============================================================================
# Constants
# ============================================================================
# https://cert-manager.io/docs/usage/ingress/#supported-annotations
HTTP01_SOLVER_LABEL = "acme.cert-manager.io/http01-solver"
HTTP01_SOLVER_LABEL_VALUE = "true"

SECRET_TYPE_TLS = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"

SERVICE_TYPE_EXTERNAL_NAME = "ExternalName"

# Values accepted by Go's strconv.ParseBool
TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


# ============================================================================
# Exception Classes
# ============================================================================
class RouteTranslationError(RuntimeError):
    """Raised when an Ingress cannot be translated into routes."""


class BackendNotFoundError(RouteTranslationError):
    """Raised when an Ingress backend references a service that does not exist."""


class PortNotFoundError(RouteTranslationError):
    """Raised when an Ingress backend references a port the service does not expose."""


class InvalidTLSSecretError(RouteTranslationError):
    """Raised when a TLS secret is missing or is not a usable TLS secret."""


class InvalidAnnotationError(RouteTranslationError):
    """Raised when a route annotation carries a value that cannot be parsed."""


class DuplicateRouteError(RouteTranslationError):
    """Raised when two routes share the same identity."""

    def __init__(self, route_id: RouteID):
        super().__init__(
            f"duplicate route {route_id.namespace}/{route_id.name}: "
            f"host={route_id.host!r} path={route_id.path!r}"
        )
        self.route_id = route_id


# ============================================================================
# Helper Functions
# ============================================================================
def parse_bool(value: str) -> bool:
    """Parse a boolean annotation value.

    Raises:
        ValueError: if the value is not one of the accepted spellings.
    """
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value {value!r}")


def is_http01_solver(ingress: Ingress) -> bool:
    """Return True if the Ingress was created by cert-manager to solve an HTTP-01 challenge."""
    labels = (ingress.metadata and ingress.metadata.labels) or {}
    return labels.get(HTTP01_SOLVER_LABEL) == HTTP01_SOLVER_LABEL_VALUE


def match_length(route: Route) -> int:
    """Return the length of the path the route matches on."""
    if route.path is not None:
        return len(route.path)
    return len(route.prefix or "")


def route_less(a: Route, b: Route) -> bool:
    """Return True if route `a` must be evaluated before route `b`.

    Follows https://kubernetes.io/docs/concepts/services-networking/ingress/#multiple-matches:
    1. precedence is given first to the longest matching path.
    2. if two paths are still equally matched, exact paths win over prefixes.
    """
    a_len, b_len = match_length(a), match_length(b)
    if a_len != b_len:
        return a_len > b_len
    return a.path is not None and b.path is None


def _sort_key(route: Route) -> Tuple[int, int]:
    return -match_length(route), 0 if route.path is not None else 1


def sort_routes(routes: Iterable[Route]) -> List[Route]:
    """Return the routes ordered so that the first matching route is the most specific one.

    The sort is stable: routes that `route_less` cannot tell apart keep their input order.
    """
    return sorted(routes, key=_sort_key)


def route_map(routes: Iterable[Route]) -> Dict[RouteID, Route]:
    """Index routes by their identity.

    For example, given routes for `/a` and `/b` on host `example.com` owned by `default/ingress`,
    this function would return:
        {
            RouteID(name="ingress", namespace="default", host="example.com", path="/a"): Route(...),
            RouteID(name="ingress", namespace="default", host="example.com", path="/b"): Route(...),
        }

    Raises:
        DuplicateRouteError: if two routes share an identity.
    """
    result: Dict[RouteID, Route] = {}
    for route in routes:
        key = route.route_id
        if key in result:
            raise DuplicateRouteError(key)
        result[key] = route
    return result


def routes_owned_by(routes: Iterable[Route], name: str, namespace: str) -> List[Route]:
    """Return the routes owned by the given Ingress, in collection order."""
    return [r for r in routes if r.name == name and r.namespace == namespace]
