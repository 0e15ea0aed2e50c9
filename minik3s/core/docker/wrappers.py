"""minik3s Docker object wrappers.

Containers and networks created by minik3s carry identity labels
(`app`, `component`, `cluster`, `created`). The wrappers below expose
those labels, and the bits of engine state the cluster reader needs, as
plain properties.
"""

from abc import ABC, abstractmethod
from typing import Optional

from docker.models.containers import Container
from docker.models.networks import Network

from minik3s.core.cluster.naming import parse_ordinal
from minik3s.settings import (
    CLUSTER_LABEL_KEY,
    COMPONENT_LABEL_KEY,
    CREATED_LABEL_KEY,
)


class Minik3sDockerObjectMixin(ABC):
    """Abstract base mixin for minik3s Docker objects."""

    def __repr__(self):
        """Return a string representation of the object."""
        return f"<{self.kind} name={self.name} id={self.id} cluster={self.cluster_name}>"

    @property
    def labels(self) -> dict[str, str]:
        """Retrieve Docker labels from the underlying Docker object."""
        attrs = getattr(self._base, "attrs", None)
        if isinstance(attrs, dict):
            if isinstance(self, Minik3sContainer) and "Config" in attrs:
                return attrs["Config"].get("Labels", {}) or {}
            return attrs.get("Labels", {}) or {}
        return {}

    @property
    def cluster_name(self) -> Optional[str]:
        """Cluster name from the `cluster` label."""
        return self.labels.get(CLUSTER_LABEL_KEY)

    @property
    def id(self) -> str:
        """ID of the object."""
        return str(getattr(self._base, "id", "<unknown>") or "<unknown>")

    @property
    def name(self) -> str:
        """Name of the object."""
        return str(getattr(self._base, "name", "<unknown>") or "<unknown>").lstrip("/")

    @property
    @abstractmethod
    def kind(self) -> str:
        """
        The kind of the Docker object.

        Returns
        -------
        str
            The string identifier of the object kind (e.g.,
            "container").
        """
        pass


class Minik3sContainer(Minik3sDockerObjectMixin, Container):
    """
    minik3s-wrapped container object.

    Parameters
    ----------
    base : Container
        The base Docker container to wrap.
    """

    def __init__(self, base: Container):
        self._base = base
        self.__dict__.update(base.__dict__)

    @property
    def kind(self) -> str:
        """Kind of object."""
        return "container"

    @property
    def role(self) -> Optional[str]:
        """Node role from the `component` label."""
        return self.labels.get(COMPONENT_LABEL_KEY)

    @property
    def ordinal(self) -> Optional[int]:
        """Worker ordinal recovered from the container name."""
        return parse_ordinal(self.name)

    @property
    def created(self) -> str:
        """Creation timestamp from the `created` label."""
        return self.labels.get(CREATED_LABEL_KEY, "")

    @property
    def state(self) -> str:
        """Raw engine state, e.g. `running` or `exited`."""
        state = self.attrs.get("State", "")
        if isinstance(state, dict):
            return state.get("Status", "") or ""
        return state or ""

    @property
    def image_ref(self) -> str:
        """Image reference the container was created from."""
        config = self.attrs.get("Config") or {}
        return config.get("Image") or self.attrs.get("Image", "") or ""

    def published_ports(self) -> list[str]:
        """
        Get the host bindings of every published port.

        Returns
        -------
        list[str]
            Bindings as `host_ip:host_port:container_port/proto`,
            sorted.
        """
        ports_dict = (self.attrs.get("NetworkSettings") or {}).get("Ports") or {}
        bindings = set()
        for container_port, mappings in ports_dict.items():
            for mapping in mappings or []:
                host_port = mapping.get("HostPort")
                if not host_port:
                    continue
                host_ip = mapping.get("HostIp", "")
                if ":" in host_ip:
                    host_ip = f"[{host_ip}]"
                bindings.add(f"{host_ip}:{host_port}:{container_port}")
        return sorted(bindings)


class Minik3sNetwork(Minik3sDockerObjectMixin, Network):
    """
    minik3s-wrapped network object.

    Parameters
    ----------
    base : Network
        The base Docker network to wrap.
    """

    def __init__(self, base: Network):
        self._base = base
        self.__dict__.update(base.__dict__)

    @property
    def kind(self) -> str:
        """Kind of object."""
        return "network"

