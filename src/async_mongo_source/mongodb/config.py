# src/async_mongo_source/mongodb/config.py

import os
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote_plus

from pydantic import BaseModel, Field


class ConnectionPoolConfig(BaseModel):
    max_pool_size: int = 100
    min_pool_size: int = 0
    max_idle_time_ms: Optional[int] = None
    connect_timeout_ms: int = 20000
    socket_timeout_ms: Optional[int] = None
    server_selection_timeout_ms: int = 30000
    heartbeat_frequency_ms: int = 10000
    retry_writes: bool = True
    retry_reads: bool = True

    def to_client_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "heartbeatFrequencyMS": self.heartbeat_frequency_ms,
            "retryWrites": self.retry_writes,
            "retryReads": self.retry_reads,
        }
        if self.max_idle_time_ms is not None:
            options["maxIdleTimeMS"] = self.max_idle_time_ms
        if self.socket_timeout_ms is not None:
            options["socketTimeoutMS"] = self.socket_timeout_ms
        return options


class MongoConfig(BaseModel):
    database: str
    hosts: List[str] = Field(default_factory=lambda: ["localhost"])
    ports: List[Union[int, str]] = Field(default_factory=lambda: ["27017"])
    user: Optional[str] = None
    password: Optional[str] = None
    auth_mechanism: Optional[str] = None
    auth_source: Optional[str] = None
    ssl: bool = False
    replica_set: Optional[str] = None
    srv: bool = False
    connection_pool: ConnectionPoolConfig = Field(default_factory=ConnectionPoolConfig)

    def build_url(self) -> str:
        """
        Builds the connection string.

        Shape: mongodb[+srv]://user:password@host:port,...[/?options]. Missing
        ports are padded with the first one; SRV URLs carry no ports.
        """
        url = "mongodb+srv://" if self.srv else "mongodb://"
        options: Dict[str, Any] = {}

        if self.user and self.password:
            url += f"{quote_plus(self.user)}:{quote_plus(self.password)}@"
            options["authMechanism"] = self.auth_mechanism or "DEFAULT"

        hosts = self.hosts or ["localhost"]
        if self.srv:
            url += ",".join(hosts)
        else:
            ports = [str(p) for p in self.ports] or ["27017"]
            ports += [ports[0]] * (len(hosts) - len(ports))
            url += ",".join(f"{host}:{port}" for host, port in zip(hosts, ports))

        if self.ssl:
            options["ssl"] = "true"
        if self.auth_source:
            options["authSource"] = self.auth_source
        if self.replica_set:
            options["replicaSet"] = self.replica_set

        if options:
            url += "/?" + "&".join(f"{key}={value}" for key, value in options.items())
        return url

    def get_client_options(self) -> Dict[str, Any]:
        return self.connection_pool.to_client_options()

    @classmethod
    def from_env(
        cls, prefix: str = "", environ: Optional[Mapping[str, str]] = None
    ) -> "MongoConfig":
        """Reads `<PREFIX>_MONGO_*` variables. A missing trailing underscore is added."""
        env = os.environ if environ is None else environ
        p = prefix.upper()
        if p and not p.endswith("_"):
            p += "_"

        def get(name: str) -> Optional[str]:
            value = env.get(f"{p}MONGO_{name}")
            return value if value else None

        def get_list(name: str) -> Optional[List[str]]:
            value = get(name)
            if value is None:
                return None
            return [item.strip() for item in value.split(",") if item.strip()]

        def get_bool(name: str) -> bool:
            return (get(name) or "").lower() in ("1", "true", "yes", "on")

        values: Dict[str, Any] = {
            "database": get("DB_NAME"),
            "user": get("USER"),
            "password": get("PASSWORD"),
            "auth_mechanism": get("AUTH_MECHANISM"),
            "auth_source": get("AUTH_SOURCE"),
            "replica_set": get("REPLICA_SET"),
            "ssl": get_bool("SSL"),
            "srv": get_bool("SRV"),
        }
        hosts = get_list("HOSTS")
        if hosts:
            values["hosts"] = hosts
        ports = get_list("PORTS")
        if ports:
            values["ports"] = ports
        return cls(**values)
