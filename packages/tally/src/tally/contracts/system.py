"""System snapshot and health payloads."""

from typing import Literal

from pydantic import BaseModel, Field

ConnectionStatus = Literal["connected", "disconnected"]


class MemoryUsage(BaseModel):
    used: int = 0
    total: int = 0
    percentage: float = 0.0


class CpuUsage(BaseModel):
    load_average: list[float] = Field(default_factory=list)
    cores: int = 0
    usage: float = 0.0


class RedisStatus(BaseModel):
    status: ConnectionStatus = "disconnected"
    memory_usage: str | None = None
    uptime: int | None = None


class DatabaseStatus(BaseModel):
    status: ConnectionStatus = "disconnected"
    response_time_ms: float | None = None


class SystemSnapshot(BaseModel):
    """Host gauges and dependency status, cached briefly in Redis."""

    uptime: float
    uptime_formatted: str
    memory: MemoryUsage = Field(default_factory=MemoryUsage)
    cpu: CpuUsage = Field(default_factory=CpuUsage)
    active_connections: int = 0
    redis: RedisStatus = Field(default_factory=RedisStatus)
    database: DatabaseStatus = Field(default_factory=DatabaseStatus)
    python_version: str = ""
    platform: str = ""


class DependencyHealth(BaseModel):
    """Readiness status for a dependency."""

    status: str = "ok"
    detail: str | None = None


class ReadinessMetrics(BaseModel):
    redis: DependencyHealth = Field(default_factory=DependencyHealth)
    database: DependencyHealth = Field(
        default_factory=lambda: DependencyHealth(status="skipped")
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    uptime: float = 0.0
    readiness: ReadinessMetrics = Field(default_factory=ReadinessMetrics)


__all__ = [
    "ConnectionStatus",
    "CpuUsage",
    "DatabaseStatus",
    "DependencyHealth",
    "HealthResponse",
    "MemoryUsage",
    "ReadinessMetrics",
    "RedisStatus",
    "SystemSnapshot",
]
