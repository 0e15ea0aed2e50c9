"""Port publishing for minik3s cluster nodes.

This module compiles user-supplied port publishing rules into per-node
port bindings. A rule has the form::

    [host-ip:][host-port:]container-port[/protocol][@selector]...

where each selector is a role group (`all`, `server`, `master`,
`workers`) or the literal name of a node in the cluster. Rules without
a selector apply to the server only.

Everything here is pure: no engine access, no logging. Errors are raised
before any container is created.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from minik3s.core.cluster.naming import all_node_names, node_name
from minik3s.core.errors import (
    InvalidPortBindingError,
    MalformedPortSpecError,
    Minik3sError,
)
from minik3s.settings import (
    DEFAULT_NODE_SELECTOR,
    NODE_SELECTOR_GROUPS,
    PORT_PROTOCOLS,
    ROLE_GROUPS,
    ROLE_SERVER,
    ROLE_WORKER,
)

MIN_PORT = 1
MAX_PORT = 65535

_SELECTOR = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
_PORT_RANGE = re.compile(r"^(\d+)(?:-(\d+))?$")


@dataclass(frozen=True)
class PortBinding:
    """A single host-side binding of a container port.

    A `host_port` of None lets the engine pick a random host port.
    """

    host_ip: str = ""
    host_port: Optional[int] = None

    def __str__(self) -> str:
        """Return the binding as `ip:port`."""
        port = "" if self.host_port is None else str(self.host_port)
        ip = f"[{self.host_ip}]" if ":" in self.host_ip else self.host_ip
        return f"{ip}:{port}"


@dataclass(frozen=True)
class PortSpec:
    """
    A parsed port publishing rule, without its node selectors.

    Parameters
    ----------
    container_ports : tuple[int, int]
        First and last container port (equal for a single port).
    protocol : str
        `"tcp"` or `"udp"`.
    host_ip : str
        Host interface to bind, empty for all interfaces.
    host_ports : Optional[tuple[int, int]]
        First and last host port, or None for random host ports.
    """

    container_ports: tuple[int, int]
    protocol: str = "tcp"
    host_ip: str = ""
    host_ports: Optional[tuple[int, int]] = None

    @classmethod
    def parse(cls, raw: str) -> PortSpec:
        """
        Parse the port portion of a publishing rule.

        Parameters
        ----------
        raw : str
            Rule without selectors, e.g. `"127.0.0.1:8080:80/tcp"`.

        Returns
        -------
        PortSpec
            The parsed rule.

        Raises
        ------
        InvalidPortBindingError
            If the rule has an invalid IP, port, range or protocol.
        """
        if not raw:
            raise InvalidPortBindingError("Empty port specification.")

        rest = raw
        host_ip = ""
        if rest.startswith("["):
            end = rest.find("]")
            if end == -1 or not rest[end + 1 :].startswith(":"):
                raise InvalidPortBindingError(f"Invalid IPv6 address in '{raw}'.")
            host_ip = rest[1:end]
            rest = rest[end + 2 :]
            parts = rest.split(":")
            if len(parts) != 2:
                raise InvalidPortBindingError(
                    f"Invalid port specification '{raw}': expected "
                    "'[ip]:host-port:container-port'."
                )
            host_part, container_part = parts
            _check_ip(host_ip, raw)
        else:
            parts = rest.split(":")
            if len(parts) == 1:
                host_part, container_part = "", parts[0]
            elif len(parts) == 2:
                host_part, container_part = parts
                if not host_part:
                    raise InvalidPortBindingError(
                        f"Missing host port in '{raw}'."
                    )
            elif len(parts) == 3:
                host_ip, host_part, container_part = parts
                _check_ip(host_ip, raw)
            else:
                raise InvalidPortBindingError(
                    f"Invalid port specification '{raw}': too many ':' separators. "
                    "IPv6 host addresses must be enclosed in brackets."
                )

        protocol = "tcp"
        if "/" in container_part:
            container_part, protocol = container_part.split("/", 1)
            protocol = protocol.lower()
            if protocol not in PORT_PROTOCOLS:
                raise InvalidPortBindingError(
                    f"Invalid protocol '{protocol}' in '{raw}'. "
                    f"Must be one of: {', '.join(PORT_PROTOCOLS)}."
                )

        container_ports = _parse_range(container_part, raw)
        host_ports = _parse_range(host_part, raw) if host_part else None

        if host_ports is not None:
            c_len = container_ports[1] - container_ports[0]
            h_len = host_ports[1] - host_ports[0]
            if c_len != h_len:
                raise InvalidPortBindingError(
                    f"Host and container port ranges in '{raw}' differ in size."
                )

        return cls(
            container_ports=container_ports,
            protocol=protocol,
            host_ip=host_ip,
            host_ports=host_ports,
        )

    def __str__(self) -> str:
        """Return the rule in normalised `ip:host:container/proto` form."""
        container = _format_range(self.container_ports)
        if self.host_ports is None and not self.host_ip:
            return f"{container}/{self.protocol}"
        host = "" if self.host_ports is None else _format_range(self.host_ports)
        ip = f"[{self.host_ip}]" if ":" in self.host_ip else self.host_ip
        return f"{ip}:{host}:{container}/{self.protocol}"

    def mappings(self) -> list[tuple[str, PortBinding]]:
        """Expand the rule into `(container-port-key, binding)` pairs."""
        result = []
        first, last = self.container_ports
        for i, port in enumerate(range(first, last + 1)):
            host_port = None if self.host_ports is None else self.host_ports[0] + i
            key = f"{port}/{self.protocol}"
            result.append((key, PortBinding(self.host_ip, host_port)))
        return result


@dataclass(frozen=True)
class PublishedPortSet:
    """
    Compiled ports of one node.

    Parameters
    ----------
    exposed : frozenset[str]
        Container-side keys such as `"80/tcp"`.
    bindings : Mapping[str, tuple[PortBinding, ...]]
        Host bindings per exposed key, in rule order.

    Notes
    -----
    The keys of `bindings` always equal `exposed`.
    """

    exposed: frozenset = frozenset()
    bindings: Mapping[str, tuple] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if set(self.bindings) != set(self.exposed):
            raise Minik3sError(
                "Exposed ports and port bindings are out of sync: "
                f"{sorted(self.exposed)} != {sorted(self.bindings)}"
            )

    def offset(self, n: int) -> PublishedPortSet:
        """Return a copy with every bound host port shifted by `n`."""
        return offset(self, n)

    def host_ports(self) -> list[int]:
        """Return every fixed host port in this set, sorted."""
        return sorted(
            b.host_port
            for bindings in self.bindings.values()
            for b in bindings
            if b.host_port is not None
        )

    def to_docker(self) -> dict[str, list[tuple[str, Optional[int]]]]:
        """Return the set as a docker SDK `port_bindings` mapping."""
        return {
            key: [(b.host_ip, b.host_port) for b in bindings]
            for key, bindings in sorted(self.bindings.items())
        }

    def exposed_ports(self) -> list[tuple[str, str]]:
        """Return the exposed keys as `(port, protocol)` tuples."""
        return [tuple(key.split("/", 1)) for key in sorted(self.exposed)]


def extract_nodes(spec: str) -> tuple[list[str], str]:
    """
    Separate the node selectors from the port portion of a rule.

    Parameters
    ----------
    spec : str
        Raw publishing rule.

    Returns
    -------
    tuple[list[str], str]
        The selectors (or the default selector when there are none) and
        the unchanged port portion.

    Examples
    --------
    >>> extract_nodes("0.0.0.0:8080:80/tcp@workers@minik3s-dev-server")
    (['workers', 'minik3s-dev-server'], '0.0.0.0:8080:80/tcp')
    >>> extract_nodes("8080:80")
    (['server'], '8080:80')
    """
    port_spec, *nodes = spec.split("@")
    if not nodes:
        nodes = [DEFAULT_NODE_SELECTOR]
    return nodes, port_spec


def validate_port_specs(specs: list[str]) -> None:
    """
    Check every rule against the publishing grammar.

    Raises
    ------
    MalformedPortSpecError
        If a port portion does not parse or a selector is not a valid
        host name token.
    """
    for spec in specs:
        port_spec, *nodes = spec.split("@")
        try:
            PortSpec.parse(port_spec)
        except InvalidPortBindingError as e:
            raise MalformedPortSpecError(
                f"Invalid port specification '{port_spec}' in port mapping '{spec}'.",
                str(e.msg).removeprefix("User error: "),
            ) from e
        for node in nodes:
            if not _SELECTOR.match(node):
                raise MalformedPortSpecError(
                    f"Invalid node selector '{node}' in port mapping '{spec}'."
                )


def compile_port_map(
    specs: list[str], known_node_names: list[str]
) -> dict[str, list[str]]:
    """
    Map each node selector to the port portions attached to it.

    Parameters
    ----------
    specs : list[str]
        Raw publishing rules.
    known_node_names : list[str]
        Names of every node that will exist in the cluster.

    Returns
    -------
    dict[str, list[str]]
        Selector to ordered list of port portions.

    Raises
    ------
    MalformedPortSpecError
        If a rule is malformed or a selector names neither a role group
        nor a known node.
    """
    validate_port_specs(specs)
    valid_selectors = NODE_SELECTOR_GROUPS + list(known_node_names)

    port_map: dict[str, list[str]] = {}
    for spec in specs:
        nodes, port_spec = extract_nodes(spec)
        for node in nodes:
            if node not in valid_selectors:
                raise MalformedPortSpecError(
                    f"Unknown node selector '{node}' in port mapping '{spec}'.",
                    f"Use one of {', '.join(NODE_SELECTOR_GROUPS)} or a node name: "
                    f"{', '.join(known_node_names) or '<none>'}.",
                )
            port_map.setdefault(node, []).append(port_spec)
    return port_map


def merge_port_specs(
    port_map: dict[str, list[str]], role: str, name: str
) -> list[str]:
    """
    Collect the port portions that apply to one node.

    Rules attached to the node's role groups come first, then rules
    attached to its literal name. Exact duplicates are dropped, keeping
    the first occurrence.

    Parameters
    ----------
    port_map : dict[str, list[str]]
        Output of `compile_port_map()`.
    role : str
        `"server"` or `"worker"`.
    name : str
        The node name.

    Returns
    -------
    list[str]
        Port portions for the node, in order.
    """
    if role not in ROLE_GROUPS:
        raise Minik3sError(f"Unknown node role: '{role}'")
    merged: list[str] = []
    for selector in [*ROLE_GROUPS[role], name]:
        for spec in port_map.get(selector, []):
            if spec not in merged:
                merged.append(spec)
    return merged


def to_binding_set(specs: list[str]) -> PublishedPortSet:
    """
    Parse port portions into a published port set.

    Raises
    ------
    InvalidPortBindingError
        If any spec fails to parse. No partial set is returned.
    """
    bindings: dict[str, list[PortBinding]] = {}
    for spec in specs:
        for key, binding in PortSpec.parse(spec).mappings():
            existing = bindings.setdefault(key, [])
            if binding not in existing:
                existing.append(binding)
    return PublishedPortSet(
        exposed=frozenset(bindings),
        bindings={k: tuple(v) for k, v in bindings.items()},
    )


def offset(port_set: PublishedPortSet, n: int) -> PublishedPortSet:
    """
    Shift every bound host port of a set by `n`.

    Container-side keys are unchanged, random host ports stay random and
    `n == 0` returns an equal set.

    Raises
    ------
    InvalidPortBindingError
        If a shifted port leaves the valid port range.
    """
    if n == 0:
        return PublishedPortSet(port_set.exposed, dict(port_set.bindings))

    shifted: dict[str, tuple[PortBinding, ...]] = {}
    for key, bindings in port_set.bindings.items():
        new_bindings = []
        for b in bindings:
            if b.host_port is None:
                new_bindings.append(b)
                continue
            port = b.host_port + n
            if not MIN_PORT <= port <= MAX_PORT:
                raise InvalidPortBindingError(
                    f"Host port {b.host_port} shifted by {n} is out of range "
                    f"for container port {key}."
                )
            new_bindings.append(PortBinding(b.host_ip, port))
        shifted[key] = tuple(new_bindings)
    return PublishedPortSet(port_set.exposed, shifted)


def worker_offset(ordinal: int, base: int) -> int:
    """
    Return the host port offset of a worker.

    Returns 0 when auto-spreading is disabled (`base == 0`), otherwise
    `base + ordinal`.
    """
    if base <= 0:
        return 0
    return base + ordinal


def api_port_spec(api_port: int) -> str:
    """Return the rule that publishes the API server port."""
    return f"0.0.0.0:{api_port}:{api_port}/tcp"


def compile_node_ports(
    specs: list[str],
    cluster_name: str,
    workers: int,
    api_port: int,
    port_auto_offset: int = 0,
) -> dict[str, PublishedPortSet]:
    """
    Compile the published port set of every node in a cluster.

    Parameters
    ----------
    specs : list[str]
        Raw publishing rules.
    cluster_name : str
        Cluster name.
    workers : int
        Number of worker nodes.
    api_port : int
        API server port, always published on the server.
    port_auto_offset : int, optional
        Base host port offset for workers; 0 disables spreading.

    Returns
    -------
    dict[str, PublishedPortSet]
        Node name to published ports, server first.

    Raises
    ------
    MalformedPortSpecError
        If a rule or selector is invalid.
    InvalidPortBindingError
        If bindings cannot be built or two nodes claim the same host
        port.
    """
    port_map = compile_port_map(specs, all_node_names(cluster_name, workers))

    server = node_name(ROLE_SERVER, cluster_name)
    server_specs = merge_port_specs(port_map, ROLE_SERVER, server)
    api_spec = api_port_spec(api_port)
    if api_spec not in server_specs:
        server_specs.append(api_spec)

    node_ports = {server: to_binding_set(server_specs)}
    for i in range(workers):
        worker = node_name(ROLE_WORKER, cluster_name, i)
        worker_ports = to_binding_set(merge_port_specs(port_map, ROLE_WORKER, worker))
        node_ports[worker] = offset(worker_ports, worker_offset(i, port_auto_offset))

    check_host_port_conflicts(node_ports)
    return node_ports


def check_host_port_conflicts(node_ports: dict[str, PublishedPortSet]) -> None:
    """
    Reject host ports claimed more than once, on one node or across
    nodes. The API server port counts as a claim on the server.

    Raises
    ------
    InvalidPortBindingError
        If two bindings share a protocol and host port on overlapping
        interfaces.
    """
    claimed: dict[tuple[str, int], list[tuple[str, str]]] = {}
    for name, port_set in node_ports.items():
        for key, bindings in port_set.bindings.items():
            protocol = key.split("/", 1)[1]
            for b in bindings:
                if b.host_port is None:
                    continue
                owners = claimed.setdefault((protocol, b.host_port), [])
                for owner, owner_ip in owners:
                    if not _ips_overlap(owner_ip, b.host_ip):
                        continue
                    if owner == name:
                        raise InvalidPortBindingError(
                            f"Host port {b.host_port}/{protocol} is published "
                            f"more than once on '{name}'.",
                            "Pick another host port, or change the API port "
                            "with --api-port.",
                        )
                    raise InvalidPortBindingError(
                        f"Host port {b.host_port}/{protocol} is published by "
                        f"both '{owner}' and '{name}'.",
                        "Use --port-auto-offset to spread worker host ports, "
                        "or attach the rule to a single node.",
                    )
                owners.append((name, b.host_ip))


def _ips_overlap(a: str, b: str) -> bool:
    wildcard = ("", "0.0.0.0", "::")
    return a == b or a in wildcard or b in wildcard


def _check_ip(ip: str, raw: str) -> None:
    if not ip:
        return
    try:
        ipaddress.ip_address(ip)
    except ValueError as e:
        raise InvalidPortBindingError(f"Invalid host IP '{ip}' in '{raw}'.") from e


def _format_range(ports: tuple[int, int]) -> str:
    first, last = ports
    return str(first) if first == last else f"{first}-{last}"


def _parse_range(value: str, raw: str) -> tuple[int, int]:
    match = _PORT_RANGE.match(value)
    if not match:
        raise InvalidPortBindingError(f"Invalid port '{value}' in '{raw}'.")
    first = int(match.group(1))
    last = int(match.group(2)) if match.group(2) else first
    if not (MIN_PORT <= first <= MAX_PORT and MIN_PORT <= last <= MAX_PORT):
        raise InvalidPortBindingError(
            f"Port '{value}' in '{raw}' is outside {MIN_PORT}-{MAX_PORT}."
        )
    if last < first:
        raise InvalidPortBindingError(f"Invalid port range '{value}' in '{raw}'.")
    return first, last
