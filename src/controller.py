#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Ingress route controller.

Owns the shared route collection and serializes every reconciliation against it.
"""

import logging
import threading
from typing import List, Optional

from pydantic import ValidationError

from models import ControllerConfig, IngressConfig, Route
from reconcile import delete_routes, upsert_routes
from routes import ingress_to_routes
from utils import RouteTranslationError, routes_owned_by, sort_routes

logger = logging.getLogger(__name__)


class IngressController:
    """Keep a route collection in sync with the Ingress resources it is given.

    The collection outlives every reconciliation. All mutations go through this class and are
    done while holding its lock, so reconciliations of different Ingresses may be requested
    from several threads.
    """

    def __init__(self, config: Optional[ControllerConfig] = None, routes: Optional[List[Route]] = None):
        self.config = config or ControllerConfig()
        self._routes: List[Route] = sort_routes(routes or [])
        self._lock = threading.Lock()

    def build_config(self, ingress, services=None, secrets=None) -> IngressConfig:
        """Return an IngressConfig bundle using this controller's settings."""
        return IngressConfig(
            ingress=ingress,
            services=dict(services or {}),
            secrets=dict(secrets or {}),
            annotation_prefix=self.config.annotation_prefix,
            cluster_domain=self.config.cluster_domain,
        )

    def reconcile(self, ic: IngressConfig) -> List[Route]:
        """Translate an Ingress and install its routes.

        Flow:
        1. Translate the Ingress into its candidate routes. No lock is needed since the bundle
           is immutable.
        2. Under the lock, replace the Ingress's previous routes with the candidates.

        A failed translation, or an Ingress that does not yield valid routes, leaves the collection
        untouched. The error is logged and re-raised for the caller to report.

        Returns:
            The routes now installed for the Ingress.
        """
        try:
            routes = ingress_to_routes(ic)
        except (RouteTranslationError, ValidationError) as e:
            logger.error(f"Ingress {ic.namespace}/{ic.name} reconciliation failed: {e}")
            raise

        with self._lock:
            upsert_routes(self._routes, ic.name, ic.namespace, routes)

        logger.info(f"Ingress {ic.namespace}/{ic.name} reconciled with {len(routes)} route(s)")
        return routes

    def delete(self, name: str, namespace: str) -> None:
        """Remove every route of the given Ingress."""
        with self._lock:
            delete_routes(self._routes, name, namespace)
        logger.info(f"Ingress {namespace}/{name} routes removed")

    def routes(self) -> List[Route]:
        """Return a snapshot of the route collection, in evaluation order."""
        with self._lock:
            return list(self._routes)

    def routes_for(self, name: str, namespace: str) -> List[Route]:
        """Return a snapshot of the routes owned by the given Ingress."""
        with self._lock:
            return routes_owned_by(self._routes, name, namespace)
