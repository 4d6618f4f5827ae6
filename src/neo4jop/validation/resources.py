"""Storage, TLS, auth and cloud identity rules."""

import re
from typing import List

from .durations import is_valid_duration
from .errors import FieldError, forbidden, invalid, required, unsupported

STORAGE_SIZE_PATTERN = re.compile(r"^\d+([KMGTPE]i?|k)?$")

TLS_MODES = ("cert-manager", "disabled")
ISSUER_KINDS = ("Issuer", "ClusterIssuer")
SECRET_STORE_KINDS = ("SecretStore", "ClusterSecretStore")
CERT_USAGES = (
    "digital signature",
    "key encipherment",
    "key agreement",
    "server auth",
    "client auth",
    "code signing",
    "email protection",
    "s/mime",
    "ipsec end system",
    "ipsec tunnel",
    "ipsec user",
    "timestamping",
    "ocsp signing",
    "microsoft sgc",
    "netscape sgc",
)

AUTH_PROVIDERS = ("native", "ldap", "kerberos", "jwt")

CLOUD_PROVIDERS = ("aws", "gcp", "azure")
CLOUD_IDENTITY_ANNOTATIONS = {
    "aws": ("eks.amazonaws.com/role-arn", "AWS IRSA requires role-arn annotation"),
    "gcp": (
        "iam.gke.io/gcp-service-account",
        "GCP Workload Identity requires gcp-service-account annotation",
    ),
    "azure": (
        "azure.workload.identity/client-id",
        "Azure Workload Identity requires client-id annotation",
    ),
}


def validate_storage(spec) -> List[FieldError]:
    errors = []
    storage = spec.storage

    if not storage.className:
        errors.append(required("spec.storage.className", "storage class name must be specified"))

    if not storage.size:
        errors.append(required("spec.storage.size", "storage size must be specified"))
    elif not STORAGE_SIZE_PATTERN.match(storage.size):
        errors.append(
            invalid(
                "spec.storage.size",
                storage.size,
                "storage size must be in format like '100Gi', '1Ti'",
            )
        )

    return errors


def validate_tls(spec) -> List[FieldError]:
    tls = spec.tls
    if tls is None:
        return []

    errors = []
    if tls.mode and tls.mode not in TLS_MODES:
        return [unsupported("spec.tls.mode", tls.mode, TLS_MODES)]

    if tls.mode == "cert-manager":
        issuer = tls.issuerRef
        if issuer is None or not issuer.name:
            errors.append(
                required("spec.tls.issuerRef.name", "issuer name must be specified for cert-manager")
            )
        if issuer is not None and issuer.kind and issuer.kind not in ISSUER_KINDS:
            errors.append(unsupported("spec.tls.issuerRef.kind", issuer.kind, ISSUER_KINDS))

        for name in ("duration", "renewBefore"):
            value = getattr(tls, name)
            if value and not is_valid_duration(value):
                errors.append(invalid(f"spec.tls.{name}", value, "invalid duration format"))

        for i, usage in enumerate(tls.usages):
            if usage not in CERT_USAGES:
                errors.append(invalid(f"spec.tls.usages[{i}]", usage, "invalid certificate usage"))

    if tls.externalSecrets is not None and tls.externalSecrets.enabled:
        errors.extend(_validate_external_secrets(tls.externalSecrets))

    return errors


def _validate_external_secrets(external) -> List[FieldError]:
    errors = []
    base = "spec.tls.externalSecrets"

    store = external.secretStoreRef
    if store is None:
        errors.append(
            required(f"{base}.secretStoreRef", "secretStoreRef is required when external secrets are enabled")
        )
    else:
        if not store.name:
            errors.append(required(f"{base}.secretStoreRef.name", "secret store name must be specified"))
        if store.kind and store.kind not in SECRET_STORE_KINDS:
            errors.append(unsupported(f"{base}.secretStoreRef.kind", store.kind, SECRET_STORE_KINDS))

    if external.refreshInterval and not is_valid_duration(external.refreshInterval):
        errors.append(
            invalid(f"{base}.refreshInterval", external.refreshInterval, "invalid duration format")
        )

    if not external.data:
        errors.append(required(f"{base}.data", "at least one data entry is required"))

    for i, entry in enumerate(external.data):
        if not entry.secretKey:
            errors.append(required(f"{base}.data[{i}].secretKey", "secretKey must be specified"))
        if entry.remoteRef is None or not entry.remoteRef.key:
            errors.append(required(f"{base}.data[{i}].remoteRef.key", "remoteRef key must be specified"))

    return errors


def validate_auth(spec) -> List[FieldError]:
    auth = spec.auth
    if auth is None or not auth.provider:
        return []

    if auth.provider not in AUTH_PROVIDERS:
        return [unsupported("spec.auth.provider", auth.provider, AUTH_PROVIDERS)]

    if auth.provider != "native" and not auth.secretRef:
        return [
            required(
                "spec.auth.secretRef",
                f"secretRef is required for {auth.provider} auth provider",
            )
        ]
    return []


def validate_cloud_identity(spec) -> List[FieldError]:
    cloud = spec.backups.cloud if spec.backups else None
    if cloud is None:
        return []

    if not cloud.provider:
        return [required("spec.backups.cloud.provider", "cloud provider must be specified")]
    if cloud.provider not in CLOUD_PROVIDERS:
        return [unsupported("spec.backups.cloud.provider", cloud.provider, CLOUD_PROVIDERS)]

    identity = cloud.identity
    if identity is None:
        return []

    errors = []
    if identity.provider and identity.provider != cloud.provider:
        errors.append(
            invalid(
                "spec.backups.cloud.identity.provider",
                identity.provider,
                "identity provider must match cloud provider",
            )
        )

    auto_create = identity.autoCreate
    if auto_create is not None and auto_create.enabled:
        path = "spec.backups.cloud.identity.autoCreate.annotations"
        if not auto_create.annotations:
            errors.append(
                required(path, "annotations are required when auto-creating a service account")
            )
        else:
            key, message = CLOUD_IDENTITY_ANNOTATIONS[cloud.provider]
            if not auto_create.annotations.get(key):
                errors.append(forbidden(f"{path}[{key}]", message))

    return errors
