#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""A helper module that builds IngressConfig bundles from a live cluster with lightkube."""


import logging
from typing import Dict, Iterator, Optional, Set

from httpx import HTTPStatusError
from lightkube.core.client import Client
from lightkube.models.networking_v1 import IngressBackend
from lightkube.resources.core_v1 import Secret, Service
from lightkube.resources.networking_v1 import Ingress

from models import ControllerConfig, IngressConfig, NamespacedName

logger = logging.getLogger(__name__)


def referenced_backends(ingress: Ingress) -> Iterator[IngressBackend]:
    """Yield every backend an Ingress refers to, rule paths first."""
    spec = ingress.spec
    if spec is None:
        return
    for rule in spec.rules or []:
        if rule.http is None:
            continue
        for http_path in rule.http.paths:
            yield http_path.backend
    if spec.defaultBackend is not None:
        yield spec.defaultBackend


def referenced_service_names(ingress: Ingress) -> Set[str]:
    """Return the names of the services an Ingress refers to."""
    return {b.service.name for b in referenced_backends(ingress) if b.service is not None}


def referenced_secret_names(ingress: Ingress) -> Set[str]:
    """Return the names of the TLS secrets an Ingress refers to."""
    tls = (ingress.spec and ingress.spec.tls) or []
    return {t.secretName for t in tls if t.secretName}


class IngressConfigFetcher:
    """Reads an Ingress and the objects it references."""

    def __init__(self, config: Optional[ControllerConfig] = None, client: Optional[Client] = None):
        self.config = config or ControllerConfig()
        self.client = client or Client(field_manager=self.config.field_manager)

    def _get(self, resource, name: str, namespace: str):
        """Return the named object, or None if it does not exist.

        Errors other than 404 are raised.
        """
        try:
            return self.client.get(resource, name=name, namespace=namespace)
        except HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info(f"{resource.__name__} {namespace}/{name} not found")
                return None
            logger.error(f"HTTP error getting {resource.__name__} {namespace}/{name}: {e}")
            raise

    def fetch(self, name: str, namespace: str) -> Optional[IngressConfig]:
        """Return the IngressConfig bundle for an Ingress.

        Missing services and secrets are left out of the bundle; translation reports them.

        Args:
            name (str): The name of the Ingress.
            namespace (str): The namespace of the Ingress.

        Returns:
            Optional[IngressConfig]: The bundle, or None if the Ingress does not exist.
        """
        ingress = self._get(Ingress, name, namespace)
        if ingress is None:
            return None

        services: Dict[NamespacedName, Service] = {}
        for service_name in sorted(referenced_service_names(ingress)):
            service = self._get(Service, service_name, namespace)
            if service is not None:
                services[NamespacedName(service_name, namespace)] = service

        secrets: Dict[NamespacedName, Secret] = {}
        for secret_name in sorted(referenced_secret_names(ingress)):
            secret = self._get(Secret, secret_name, namespace)
            if secret is not None:
                secrets[NamespacedName(secret_name, namespace)] = secret

        return IngressConfig(
            ingress=ingress,
            services=services,
            secrets=secrets,
            annotation_prefix=self.config.annotation_prefix,
            cluster_domain=self.config.cluster_domain,
        )
