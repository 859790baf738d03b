#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Resolution of Ingress backends to upstream URLs."""
import logging
from typing import Optional

from lightkube.models.core_v1 import ServicePort
from lightkube.models.networking_v1 import IngressBackend, ServiceBackendPort
from lightkube.resources.core_v1 import Service

from models import IngressConfig
from utils import SERVICE_TYPE_EXTERNAL_NAME, BackendNotFoundError, PortNotFoundError

logger = logging.getLogger(__name__)


def find_service_port(service: Service, port: ServiceBackendPort) -> Optional[ServicePort]:
    """Return the service port an Ingress backend port refers to.

    A backend port is matched on the service port name when it carries one, otherwise on
    the service port number (not the target port).
    """
    ports = (service.spec and service.spec.ports) or []
    for service_port in ports:
        if port.name:
            if service_port.name == port.name:
                return service_port
        elif port.number is not None and service_port.port == port.number:
            return service_port
    return None


def _describe_port(port: Optional[ServiceBackendPort]) -> str:
    if port is None:
        return "<unset>"
    return port.name if port.name else str(port.number)


def resolve_backend(backend: IngressBackend, ic: IngressConfig, secure_upstream: bool = False) -> str:
    """Resolve an Ingress backend to the URL of its upstream.

    Resolution order:
    1. the referenced service must exist in the Ingress namespace;
    2. the referenced port must exist on that service;
    3. ExternalName services resolve to their external DNS name and the matched port;
    4. other services resolve to their cluster DNS name and the declared service port.

    The scheme is https when `secure_upstream` is set or the matched port is named "https".

    Args:
        backend: The Ingress backend (rule path backend or default backend).
        ic: The Ingress bundle holding the service lookups.
        secure_upstream: Whether the Ingress asked for TLS to the upstream.

    Returns:
        The upstream URL, e.g. `http://service.default.svc.cluster.local:80`.

    Raises:
        BackendNotFoundError: if the backend does not reference a known service.
        PortNotFoundError: if the service does not expose the referenced port.
    """
    if backend.service is None:
        raise BackendNotFoundError(
            f"{ic.namespace}/{ic.name}: only service backends are supported"
        )

    service_name = backend.service.name
    service = ic.get_service(service_name)
    if service is None:
        raise BackendNotFoundError(f"service {ic.namespace}/{service_name} not found")

    service_port = None
    if backend.service.port is not None:
        service_port = find_service_port(service, backend.service.port)
    if service_port is None:
        raise PortNotFoundError(
            f"service {ic.namespace}/{service_name} has no port "
            f"{_describe_port(backend.service.port)}"
        )

    if service.spec and service.spec.type == SERVICE_TYPE_EXTERNAL_NAME:
        host = f"{service.spec.externalName}:{service_port.port}"
    else:
        host = f"{service_name}.{ic.namespace}.svc.{ic.cluster_domain}:{service_port.port}"

    scheme = "http"
    if secure_upstream or (service_port.name or "").lower() == "https":
        scheme = "https"

    url = f"{scheme}://{host}"
    logger.debug(f"Resolved backend {service_name}:{_describe_port(backend.service.port)} to {url}")
    return url
