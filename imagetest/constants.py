"""Global constants for imagetest.

This module contains application-wide constants shared by the inventory,
the harness lifecycle and the k3s harness implementation.
"""

from enum import Enum

DEFAULT_HARNESS_CREATE_TIMEOUT_SECONDS = 300.0
"""Default upper bound in seconds for a harness create (setup) operation.

Five minutes allows a k3s server to pull its image, boot, and report ready
on a typical CI runner. Overridden per harness via ``timeouts.create``.
"""

DEFAULT_SANDBOX_IMAGE = "cgr.dev/chainguard/kubectl:latest-dev"
"""Default image for the k3s sandbox container.

The sandbox runs feature steps, so it ships with kubectl preinstalled.
"""

DEFAULT_K3S_IMAGE = "cgr.dev/chainguard/k3s:latest"
"""Image used for the k3s server container when a harness sets no ``image``."""

DEFAULT_DISABLE_CNI = False
"""Default for ``disable_cni``; the builtin flannel CNI stays enabled."""

DEFAULT_DISABLE_TRAEFIK = True
"""Default for ``disable_traefik``; the builtin ingress controller is disabled."""

DEFAULT_DISABLE_METRICS_SERVER = True
"""Default for ``disable_metrics_server``; the builtin metrics server is disabled."""

ENCODED_SEED_LENGTH = 12
"""Number of hex characters kept from the seed digest.

Forty-eight bits keep identifiers short enough to prefix container and
network names while making collisions between distinct seeds negligible.
"""

SETUP_POLL_INTERVAL_SECONDS = 1.0
"""Delay between readiness probes of the k3s server during setup."""

K3S_API_PORT = 6443
"""Port the k3s API server listens on inside the cluster network."""

K3S_REGISTRIES_PATH = "/etc/rancher/k3s/registries.yaml"
"""Location k3s reads private registry configuration from."""

K3S_KUBECONFIG_PATH = "/etc/rancher/k3s/k3s.yaml"
"""Location of the admin kubeconfig written by the k3s server."""

SANDBOX_KUBECONFIG_PATH = "/root/.kube/config"
"""Location the kubeconfig is copied to inside the sandbox container."""

INVENTORY_FILE_PREFIX = "inventory-"
"""Filename prefix for file-backed inventory documents."""

DEFAULT_CONFIG_FILE = "imagetest.yaml"
"""Configuration file used when neither ``--config`` nor IMAGETEST_CONFIG is set."""

CONFIG_ENV_VAR = "IMAGETEST_CONFIG"
"""Environment variable naming the configuration file."""

LABELS_ENV_VAR = "IMAGETEST_LABELS"
"""Environment variable holding runtime labels as ``k=v,k2=v2``."""

DEBUG_ENV_VAR = "IMAGETEST_DEBUG"
"""Environment variable enabling debug logging and tracebacks when ``1``."""

DEFAULT_NAME_COLUMN_WIDTH = 24
"""Default width in characters for the harness name column in CLI output."""

DEFAULT_PARALLELISM = 4
"""Default number of harnesses or features evaluated concurrently."""

EXIT_ERROR = 1
"""Exit code indicating a general application error.

Returned when any harness or feature phase reports an error diagnostic.
"""

EXIT_CONFIG_ERROR = 2
"""Exit code indicating a configuration error."""


class HarnessStatus(str, Enum):
    """Lifecycle states of a harness."""

    PLANNED = "planned"
    SKIPPED = "skipped"
    CREATED = "created"
    DELETED = "deleted"


class Severity(str, Enum):
    """Diagnostic severities."""

    ERROR = "error"
    WARNING = "warning"
