"""Static schema tables for Docker container inspect payloads.

A schema maps each source key of a record to either a value ``Kind`` or a
nested schema. ``compile_schema`` resolves it once into a flat layout: one
``FlatField`` per leaf, whose key is the lowercased source key prefixed by the
lowercased names of its enclosing records (``State.Running`` becomes
``state_running``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Kind(Enum):
    """How a leaf value is rendered into a flat string."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    JSON = "json"  # lists and mappings


Schema = dict[str, Union[Kind, "Schema"]]


@dataclass(frozen=True)
class FlatField:
    """One leaf of a compiled schema."""

    key: str
    path: tuple[str, ...]
    kind: Kind


def compile_schema(schema: Schema, prefix: str = "", path: tuple[str, ...] = ()) -> tuple[FlatField, ...]:
    """Resolve a nested schema into its flat layout.

    Raises:
        ValueError: If two leaves resolve to the same flat key.
    """
    fields: list[FlatField] = []
    for source_key, entry in schema.items():
        name = prefix + source_key.lower()
        if isinstance(entry, dict):
            fields.extend(compile_schema(entry, name + "_", path + (source_key,)))
        else:
            fields.append(FlatField(key=name, path=path + (source_key,), kind=entry))

    keys = [f.key for f in fields]
    duplicates = {k for k in keys if keys.count(k) > 1}
    if duplicates:
        raise ValueError(f"Schema flattens to duplicate keys: {sorted(duplicates)}")
    return tuple(fields)


STATE_SCHEMA: Schema = {
    "Status": Kind.STRING,
    "Running": Kind.BOOLEAN,
    "Paused": Kind.BOOLEAN,
    "Restarting": Kind.BOOLEAN,
    "OOMKilled": Kind.BOOLEAN,
    "Dead": Kind.BOOLEAN,
    "Pid": Kind.INTEGER,
    "ExitCode": Kind.INTEGER,
    "Error": Kind.STRING,
    "StartedAt": Kind.STRING,
    "FinishedAt": Kind.STRING,
}

CONFIG_SCHEMA: Schema = {
    "Hostname": Kind.STRING,
    "Domainname": Kind.STRING,
    "User": Kind.STRING,
    "AttachStdin": Kind.BOOLEAN,
    "AttachStdout": Kind.BOOLEAN,
    "AttachStderr": Kind.BOOLEAN,
    "ExposedPorts": Kind.JSON,
    "Tty": Kind.BOOLEAN,
    "OpenStdin": Kind.BOOLEAN,
    "StdinOnce": Kind.BOOLEAN,
    "Env": Kind.JSON,
    "Cmd": Kind.JSON,
    "Image": Kind.STRING,
    "Volumes": Kind.JSON,
    "WorkingDir": Kind.STRING,
    "Entrypoint": Kind.JSON,
    "Labels": Kind.JSON,
    "StopSignal": Kind.STRING,
}

HOST_CONFIG_SCHEMA: Schema = {
    "NetworkMode": Kind.STRING,
    "RestartPolicy": Kind.JSON,
    "PortBindings": Kind.JSON,
    "Binds": Kind.JSON,
    "Links": Kind.JSON,
    "Dns": Kind.JSON,
    "ExtraHosts": Kind.JSON,
    "VolumesFrom": Kind.JSON,
    "Privileged": Kind.BOOLEAN,
    "PublishAllPorts": Kind.BOOLEAN,
    "ReadonlyRootfs": Kind.BOOLEAN,
    "Memory": Kind.INTEGER,
    "NanoCpus": Kind.INTEGER,
    "CpuShares": Kind.INTEGER,
}

NETWORK_SETTINGS_SCHEMA: Schema = {
    "Bridge": Kind.STRING,
    "SandboxID": Kind.STRING,
    "HairpinMode": Kind.BOOLEAN,
    "Ports": Kind.JSON,
    "Gateway": Kind.STRING,
    "IPAddress": Kind.STRING,
    "IPPrefixLen": Kind.INTEGER,
    "MacAddress": Kind.STRING,
    "GlobalIPv6Address": Kind.STRING,
    "Networks": Kind.JSON,
}

CONTAINER_SCHEMA: Schema = {
    "Id": Kind.STRING,
    "Created": Kind.STRING,
    "Path": Kind.STRING,
    "Args": Kind.JSON,
    "State": STATE_SCHEMA,
    "Image": Kind.STRING,
    "ResolvConfPath": Kind.STRING,
    "HostnamePath": Kind.STRING,
    "HostsPath": Kind.STRING,
    "LogPath": Kind.STRING,
    "Name": Kind.STRING,
    "RestartCount": Kind.INTEGER,
    "Driver": Kind.STRING,
    "Platform": Kind.STRING,
    "MountLabel": Kind.STRING,
    "ProcessLabel": Kind.STRING,
    "AppArmorProfile": Kind.STRING,
    "ExecIDs": Kind.JSON,
    "HostConfig": HOST_CONFIG_SCHEMA,
    "Mounts": Kind.JSON,
    "Config": CONFIG_SCHEMA,
    "NetworkSettings": NETWORK_SETTINGS_SCHEMA,
}

CONTAINER_LAYOUT = compile_schema(CONTAINER_SCHEMA)
