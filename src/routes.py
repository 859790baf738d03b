#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Translation of Ingress resources into proxy routes.

`ingress_to_routes` expands the rules, default backend, TLS blocks and annotations of one
Ingress into the candidate routes for that Ingress. The result is unsorted; ordering and
merging into the shared collection is done by `reconcile.upsert_routes`.
"""
import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from lightkube.models.networking_v1 import HTTPIngressPath, IngressSpec, IngressTLS

from backends import resolve_backend
from models import IngressConfig, PathType, Route, TLSMaterial
from utils import (
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    InvalidAnnotationError,
    InvalidTLSSecretError,
    is_http01_solver,
    parse_bool,
    route_map,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Annotations
# ============================================================================
SECURE_UPSTREAM = "secure-upstream"
TLS_SERVER_NAME = "tls-server-name"
SET_REQUEST_HEADERS = "set-request-headers"
ALLOWED_DOMAINS = "allowed-domains"

# Annotation suffix -> Route field
BOOL_ANNOTATIONS = {
    "allow-public-unauthenticated-access": "allow_public_unauthenticated_access",
    "allow-any-authenticated-user": "allow_any_authenticated_user",
    "preserve-host-header": "preserve_host_header",
    "pass-identity-headers": "pass_identity_headers",
    "tls-skip-verify": "tls_skip_verify",
}


def _annotation_value(key: str, value: str) -> Any:
    if key in BOOL_ANNOTATIONS or key == SECURE_UPSTREAM:
        return parse_bool(value)
    if key == TLS_SERVER_NAME:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()
    if key == SET_REQUEST_HEADERS:
        headers = json.loads(value)
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise ValueError("expected a JSON object of strings")
        return headers
    if key == ALLOWED_DOMAINS:
        return [d.strip() for d in value.split(",") if d.strip()]
    raise KeyError(key)


def parse_annotations(ic: IngressConfig) -> Tuple[Dict[str, Any], bool]:
    """Parse the route annotations of an Ingress.

    Only annotations under `<annotation_prefix>/` are considered. Unknown keys under the prefix
    are ignored with a warning.

    Returns:
        A tuple of (route field overrides, secure upstream requested).

    Raises:
        InvalidAnnotationError: if a known annotation carries a malformed value.
    """
    fields: Dict[str, Any] = {}
    secure_upstream = False
    prefix = f"{ic.annotation_prefix}/"

    for annotation, value in sorted(ic.annotations.items()):
        if not annotation.startswith(prefix):
            continue
        key = annotation[len(prefix):]
        try:
            parsed = _annotation_value(key, value)
        except KeyError:
            logger.warning(f"Ignoring unknown annotation {annotation} on {ic.namespace}/{ic.name}")
            continue
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            raise InvalidAnnotationError(
                f"{ic.namespace}/{ic.name}: annotation {annotation}={value!r}: {e}"
            ) from e

        if key == SECURE_UPSTREAM:
            secure_upstream = parsed
        elif key in BOOL_ANNOTATIONS:
            fields[BOOL_ANNOTATIONS[key]] = parsed
        else:
            fields[key.replace("-", "_")] = parsed

    return fields, secure_upstream


# ============================================================================
# TLS
# ============================================================================
def find_tls(ic: IngressConfig, host: str) -> Optional[IngressTLS]:
    """Return the first TLS block covering the host.

    A TLS block without hosts covers every host.
    """
    spec = ic.ingress.spec
    for tls in (spec and spec.tls) or []:
        if not tls.hosts or host in tls.hosts:
            return tls
    return None


def get_tls_material(ic: IngressConfig, secret_name: Optional[str]) -> TLSMaterial:
    """Load the certificate and key of a TLS secret.

    Raises:
        InvalidTLSSecretError: if the secret is absent, not of TLS type or incomplete.
    """
    secret = ic.get_secret(secret_name) if secret_name else None
    if secret is None:
        raise InvalidTLSSecretError(f"secret {ic.namespace}/{secret_name} not found")
    if secret.type != SECRET_TYPE_TLS:
        raise InvalidTLSSecretError(
            f"secret {ic.namespace}/{secret_name} has type {secret.type!r}, expected {SECRET_TYPE_TLS!r}"
        )

    data = secret.data or {}
    try:
        certificate = base64.b64decode(data[TLS_CERT_KEY], validate=True)
        private_key = base64.b64decode(data[TLS_PRIVATE_KEY_KEY], validate=True)
    except KeyError as e:
        raise InvalidTLSSecretError(f"secret {ic.namespace}/{secret_name} has no {e} entry") from e
    except binascii.Error as e:
        raise InvalidTLSSecretError(f"secret {ic.namespace}/{secret_name} is not valid base64") from e

    return TLSMaterial(certificate=certificate, private_key=private_key)


# ============================================================================
# Routes
# ============================================================================
def path_match(http_path: HTTPIngressPath) -> Dict[str, str]:
    """Return the path or prefix a rule path matches on.

    Exact paths match exactly; Prefix, ImplementationSpecific and unknown path types become
    prefixes. A rule path without a path matches the prefix "/".
    """
    if not http_path.path:
        return {"prefix": "/"}
    if http_path.pathType == PathType.Exact.value:
        return {"path": http_path.path}
    return {"prefix": http_path.path}


def ingress_to_routes(ic: IngressConfig) -> List[Route]:
    """Translate an Ingress into its candidate routes.

    Flow:
    1. Parse the route annotations into a template shared by every route.
    2. Mark every route public and host-preserving if the Ingress is an HTTP-01 challenge solver.
    3. Create one route per rule path, attaching the TLS material covering the rule host.
    4. Add a catch-all route for the default backend unless a hostless rule already has the
       identity "/", either as a prefix or as an exact path.
    5. Reject routes sharing the same identity.

    Nothing is returned unless every route could be built.

    Raises:
        BackendNotFoundError: if a backend references an unknown service.
        PortNotFoundError: if a backend references an unknown service port.
        InvalidTLSSecretError: if a TLS secret covering a route is unusable.
        InvalidAnnotationError: if a route annotation is malformed.
        DuplicateRouteError: if two routes share the same identity.
    """
    template, secure_upstream = parse_annotations(ic)
    if is_http01_solver(ic.ingress):
        logger.debug(f"{ic.namespace}/{ic.name} is an HTTP-01 solver, allowing public access")
        template["allow_public_unauthenticated_access"] = True
        template["preserve_host_header"] = True

    tls_cache: Dict[str, TLSMaterial] = {}

    def tls_for(host: str) -> Optional[TLSMaterial]:
        tls = find_tls(ic, host)
        if tls is None:
            return None
        key = tls.secretName or ""
        if key not in tls_cache:
            tls_cache[key] = get_tls_material(ic, tls.secretName)
        return tls_cache[key]

    def make_route(host: str, match: Dict[str, str], to: str) -> Route:
        return Route(
            name=ic.name,
            namespace=ic.namespace,
            host=host,
            to=[to],
            tls=tls_for(host),
            **match,
            **template,
        )

    routes: List[Route] = []
    spec = ic.ingress.spec or IngressSpec()

    for rule in spec.rules or []:
        host = rule.host or ""
        if rule.http is None:
            logger.debug(f"{ic.namespace}/{ic.name}: skipping rule for {host!r} without http paths")
            continue
        for http_path in rule.http.paths:
            to = resolve_backend(http_path.backend, ic, secure_upstream)
            routes.append(make_route(host, path_match(http_path), to))

    if spec.defaultBackend is not None:
        root = next((r for r in routes if r.host == "" and r.route_id.path == "/"), None)
        if root is not None and root.prefix == "/":
            logger.debug(f"{ic.namespace}/{ic.name}: a rule already matches '/', skipping default backend")
        elif root is not None:
            # an exact "/" rule takes the identity the catch-all would use
            logger.warning(
                f"{ic.namespace}/{ic.name}: exact rule for '/' on any host shadows the default backend, "
                "skipping default backend"
            )
        else:
            to = resolve_backend(spec.defaultBackend, ic, secure_upstream)
            routes.append(make_route("", {"prefix": "/"}, to))

    # raises DuplicateRouteError on identity collisions
    route_map(routes)

    logger.debug(f"Translated {ic.namespace}/{ic.name} into {len(routes)} route(s)")
    return routes
