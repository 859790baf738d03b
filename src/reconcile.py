#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Reconciliation of one Ingress's routes into the shared route collection.

The collection holds routes of many Ingress resources. Each reconciliation replaces the
contribution of exactly one owner and leaves every other route untouched. Callers must hold
exclusive access to the collection for the duration of a call.
"""
import logging
from typing import List, Sequence

from models import IngressConfig, Route
from routes import ingress_to_routes
from utils import sort_routes

logger = logging.getLogger(__name__)


def upsert_routes(
    collection: List[Route], name: str, namespace: str, routes: Sequence[Route]
) -> None:
    """Replace the routes owned by an Ingress within the collection, modifying it in place.

    For example, given a collection owned by two Ingresses:
        [
            Route(name="a", namespace="default", prefix="/api"),
            Route(name="b", namespace="default", prefix="/"),
            Route(name="a", namespace="default", prefix="/"),
        ]

    Calling `upsert_routes(collection, "a", "default", [Route(name="a", ..., path="/login")])`
    leaves:
        [
            Route(name="a", namespace="default", path="/login"),
            Route(name="b", namespace="default", prefix="/"),
        ]

    Routes of other owners keep their relative order. The owner's new routes are placed after
    them before sorting, so among equally specific routes they come last. Passing no routes
    removes the owner entirely.

    Side effects: Modifies collection in place.

    Args:
        collection: The shared, sorted route collection (modified in place)
        name: Name of the owning Ingress
        namespace: Namespace of the owning Ingress
        routes: The complete new set of routes for the owner

    Raises:
        ValueError: if a route is not owned by the given Ingress. The collection is left untouched.
    """
    foreign = [r for r in routes if not (r.name == name and r.namespace == namespace)]
    if foreign:
        raise ValueError(
            f"cannot install routes of {foreign[0].namespace}/{foreign[0].name} as routes of {namespace}/{name}"
        )

    others = [r for r in collection if not (r.name == name and r.namespace == namespace)]
    removed = len(collection) - len(others)
    collection[:] = sort_routes([*others, *routes])
    logger.debug(
        f"Replaced {removed} route(s) of {namespace}/{name} with {len(routes)}, "
        f"collection now holds {len(collection)}"
    )


def delete_routes(collection: List[Route], name: str, namespace: str) -> None:
    """Remove every route owned by an Ingress from the collection."""
    upsert_routes(collection, name, namespace, [])


def upsert_ingress(collection: List[Route], ic: IngressConfig) -> List[Route]:
    """Translate an Ingress and install its routes into the collection.

    Translation happens before the collection is touched: if it fails, the error propagates and
    the collection is left exactly as it was.

    Returns:
        The routes installed for the Ingress.
    """
    routes = ingress_to_routes(ic)
    upsert_routes(collection, ic.name, ic.namespace, routes)
    return routes
