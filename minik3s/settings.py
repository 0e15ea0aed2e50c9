"""Settings and constants for the minik3s CLI."""

# Docker labels
APP_LABEL_KEY = "app"
APP_LABEL_VALUE = "minik3s"
COMPONENT_LABEL_KEY = "component"
CLUSTER_LABEL_KEY = "cluster"
CREATED_LABEL_KEY = "created"
CREATED_LABEL_FORMAT = "%Y-%m-%d %H:%M:%S"

# Node roles
ROLE_SERVER = "server"
ROLE_WORKER = "worker"

# Naming
NAME_PREFIX = "minik3s"
CLUSTER_NAME_MAX_LEN = 35
HOSTNAME_MAX_LEN = 63

# Port publishing
ROLE_GROUPS = {
    ROLE_SERVER: ["all", "server", "master"],
    ROLE_WORKER: ["all", "workers"],
}
NODE_SELECTOR_GROUPS = ["all", "server", "master", "workers"]
DEFAULT_NODE_SELECTOR = "server"
PORT_PROTOCOLS = ("tcp", "udp")

# Defaults
DEFAULT_REGISTRY = "docker.io"
DEFAULT_IMAGE = "rancher/k3s:v1.29.4-k3s1"
DEFAULT_CLUSTER_NAME = "k3s-default"
DEFAULT_API_PORT = 6443
DEFAULT_MAX_PARALLEL = 4
READINESS_MARKER = "Running kubelet"
POLL_INTERVAL = 1.0
SECRET_LENGTH = 20

# Container paths and environment
KUBECONFIG_CONTAINER_PATH = "/output/kubeconfig.yaml"
KUBECONFIG_FILENAME = "kubeconfig.yaml"
WORKER_TMPFS = {"/run": "", "/var/run": ""}

# User directories
CONFIG_ROOT_ENV = "MINIK3S_HOME"
DEFAULT_CONFIG_ROOT = "~/.config/minik3s"
CONFIG_FILENAME = "minik3s.cfg"

# Templates
CONFIG_TEMPLATE = """
[config]
# defaults to 'rancher/k3s:v1.29.4-k3s1'
IMAGE=

# defaults to 'k3s-default'
CLUSTER_NAME=

# defaults to 6443
API_PORT=

# 0 disables host port spreading for workers
PORT_AUTO_OFFSET=

# seconds to wait for the server with 'create --wait'; 0 waits forever
WAIT_TIMEOUT=

# number of worker nodes stopped/started/removed in parallel
MAX_PARALLEL=

DOCKER_HOST=
"""
