#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
"""This module defines Pydantic schemas for the proxy routes produced from Kubernetes Ingress resources."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from lightkube.resources.core_v1 import Secret, Service
from lightkube.resources.networking_v1 import Ingress
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_ANNOTATION_PREFIX = "ingress.pomerium.io"
DEFAULT_CLUSTER_DOMAIN = "cluster.local"


class NamespacedName(NamedTuple):
    """NamespacedName identifies a namespaced Kubernetes object, and the owner of a route."""

    name: str
    namespace: str


class PathType(str, Enum):
    """PathType mirrors the Ingress pathType values."""

    Exact = "Exact"
    Prefix = "Prefix"
    ImplementationSpecific = "ImplementationSpecific"


# Route schema
class TLSMaterial(BaseModel):
    """TLSMaterial holds the decoded certificate and key of a TLS secret."""

    model_config = ConfigDict(frozen=True)

    certificate: bytes
    private_key: bytes


class RouteID(BaseModel):
    """RouteID is the identity of a route across reconciliations.

    `path` holds the exact path when the route has one, otherwise its prefix.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    host: str = ""
    path: str

    def marshal(self) -> str:
        """Return the compact JSON form used as the route identifier."""
        return self.model_dump_json()

    @classmethod
    def unmarshal(cls, data: str) -> "RouteID":
        """Parse a route identifier produced by `marshal`."""
        return cls.model_validate_json(data)


class Route(BaseModel):
    """Route is a single proxy route owned by an Ingress resource.

    `name` and `namespace` are those of the owning Ingress. An empty `host`
    matches any host. Exactly one of `path` (exact match) and `prefix` is set;
    a route given neither matches the prefix "/".
    """

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    host: str = ""
    path: Optional[str] = None
    prefix: Optional[str] = None
    to: List[str] = Field(min_length=1)
    allow_public_unauthenticated_access: bool = False
    preserve_host_header: bool = False
    tls: Optional[TLSMaterial] = None
    id: str = ""

    allow_any_authenticated_user: bool = False
    pass_identity_headers: bool = False
    tls_skip_verify: bool = False
    tls_server_name: Optional[str] = None
    set_request_headers: Dict[str, str] = Field(default_factory=dict)
    allowed_domains: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def default_prefix_and_id(cls, data):
        """Degrade a route with neither path nor prefix to the prefix "/" and derive its identifier."""
        if not isinstance(data, dict):
            return data
        if data.get("path") is None and data.get("prefix") is None:
            data = {**data, "prefix": "/"}
        owner = (data.get("name"), data.get("namespace"))
        if not data.get("id") and all(isinstance(v, str) for v in owner):
            route_id = RouteID(
                name=data["name"],
                namespace=data["namespace"],
                host=data.get("host", ""),
                path=data["path"] if data.get("path") is not None else data["prefix"],
            )
            data = {**data, "id": route_id.marshal()}
        return data

    @model_validator(mode="after")
    def validate_path_prefix(self):
        """Validate that at most one of path and prefix is defined."""
        if self.path is not None and self.prefix is not None:
            raise ValueError("At most one of path and prefix can be set")
        return self

    @property
    def route_id(self) -> RouteID:
        """Return the identity of this route."""
        return RouteID(
            name=self.name,
            namespace=self.namespace,
            host=self.host,
            path=self.path if self.path is not None else self.prefix,
        )

    @property
    def owner(self) -> NamespacedName:
        """Return the Ingress this route belongs to."""
        return NamespacedName(self.name, self.namespace)


# Input schema
# lightkube resources are dataclasses that pydantic must not re-validate, hence a plain dataclass.
@dataclass(frozen=True)
class IngressConfig:
    """IngressConfig bundles an Ingress with the objects it references.

    Services and secrets are keyed by (name, namespace). The bundle is built fresh for every
    reconciliation and never modified.
    """

    ingress: Ingress
    services: Dict[NamespacedName, Service] = field(default_factory=dict)
    secrets: Dict[NamespacedName, Secret] = field(default_factory=dict)
    annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN

    @property
    def name(self) -> str:
        """Name of the Ingress."""
        return self.ingress.metadata.name

    @property
    def namespace(self) -> str:
        """Namespace of the Ingress."""
        return self.ingress.metadata.namespace

    @property
    def annotations(self) -> Dict[str, str]:
        """Annotations of the Ingress."""
        return self.ingress.metadata.annotations or {}

    def get_service(self, name: str) -> Optional[Service]:
        """Return the named service from the Ingress namespace, if known."""
        return self.services.get(NamespacedName(name, self.namespace))

    def get_secret(self, name: str) -> Optional[Secret]:
        """Return the named secret from the Ingress namespace, if known."""
        return self.secrets.get(NamespacedName(name, self.namespace))


# Configuration schema
class ControllerConfig(BaseModel):
    """ControllerConfig holds the settings shared by every reconciliation."""

    annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN
    field_manager: str = "ingress-routes"

    @field_validator("annotation_prefix", "cluster_domain")
    @classmethod
    def validate_not_empty(cls, value: str) -> str:
        """Validate that the value is set and has no surrounding separators."""
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        if value.endswith("/") or value.endswith("."):
            raise ValueError("must not end with a separator")
        return value
