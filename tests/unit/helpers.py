# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Builders for the lightkube objects used across the unit tests."""

import base64
from typing import Dict, List, Optional, Tuple

from lightkube.models.core_v1 import ServicePort, ServiceSpec
from lightkube.models.meta_v1 import ObjectMeta
from lightkube.models.networking_v1 import (
    HTTPIngressPath,
    HTTPIngressRuleValue,
    IngressBackend,
    IngressRule,
    IngressServiceBackend,
    IngressSpec,
    IngressTLS,
    ServiceBackendPort,
)
from lightkube.resources.core_v1 import Secret, Service
from lightkube.resources.networking_v1 import Ingress

from models import IngressConfig, NamespacedName, Route

HOST = "service.localhost.pomerium.io"


def backend(service: str, port_name: Optional[str] = None, port_number: Optional[int] = None):
    return IngressBackend(
        service=IngressServiceBackend(
            name=service, port=ServiceBackendPort(name=port_name, number=port_number)
        )
    )


def http_path(
    path: Optional[str],
    service: str = "service",
    port_name: Optional[str] = "http",
    port_number: Optional[int] = None,
    path_type: str = "Prefix",
):
    return HTTPIngressPath(
        path=path, pathType=path_type, backend=backend(service, port_name, port_number)
    )


def rule(host: Optional[str], paths: List[HTTPIngressPath]):
    return IngressRule(host=host, http=HTTPIngressRuleValue(paths=paths))


def ingress(
    name: str = "ingress",
    namespace: str = "default",
    rules: Optional[List[IngressRule]] = None,
    tls: Optional[List[IngressTLS]] = None,
    default_backend: Optional[IngressBackend] = None,
    labels: Optional[Dict[str, str]] = None,
    annotations: Optional[Dict[str, str]] = None,
):
    return Ingress(
        metadata=ObjectMeta(
            name=name, namespace=namespace, labels=labels, annotations=annotations
        ),
        spec=IngressSpec(rules=rules, tls=tls, defaultBackend=default_backend),
    )


def service(
    name: str = "service",
    namespace: str = "default",
    ports: Optional[List[Tuple[Optional[str], int]]] = None,
    external_name: Optional[str] = None,
    target_port: Optional[int] = None,
):
    if ports is None:
        ports = [("http", 80)]
    return Service(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=ServiceSpec(
            type="ExternalName" if external_name else "ClusterIP",
            externalName=external_name,
            ports=[
                ServicePort(name=port_name, port=port, protocol="TCP", targetPort=target_port)
                for port_name, port in ports
            ],
        ),
    )


def tls_secret(
    name: str = "secret",
    namespace: str = "default",
    cert: bytes = b"CERT",
    key: bytes = b"KEY",
    type: str = "kubernetes.io/tls",
):
    return Secret(
        metadata=ObjectMeta(name=name, namespace=namespace),
        type=type,
        data={
            "tls.crt": base64.b64encode(cert).decode(),
            "tls.key": base64.b64encode(key).decode(),
        },
    )


def ingress_config(ing: Ingress, services=(), secrets=(), annotation_prefix: str = "p"):
    return IngressConfig(
        ingress=ing,
        services={NamespacedName(s.metadata.name, s.metadata.namespace): s for s in services},
        secrets={NamespacedName(s.metadata.name, s.metadata.namespace): s for s in secrets},
        annotation_prefix=annotation_prefix,
    )


def route(
    name: str = "ingress",
    namespace: str = "default",
    host: str = HOST,
    path: Optional[str] = None,
    prefix: Optional[str] = None,
    id: str = "",
):
    return Route(
        name=name,
        namespace=namespace,
        host=host,
        path=path,
        prefix=prefix,
        to=[f"http://{name}.{namespace}.svc.cluster.local:80"],
        id=id,
    )
