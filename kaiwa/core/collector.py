"""Live telemetry source -- builds a context tree from psutil readings.

The chat pipeline never collects on its own; callers (the CLI's --live flag,
GET /context/live) attach this tree as systemContext explicitly.
"""

from __future__ import annotations

import os
import platform
import time
from datetime import datetime, timezone

import psutil

from kaiwa.log import logger


def get_cpu_metrics() -> dict:
    # interval=0 is non-blocking; the first call after process start reads 0.0
    freq = psutil.cpu_freq()
    return {
        "percent": psutil.cpu_percent(interval=0),
        "count_physical": psutil.cpu_count(logical=False) or 1,
        "count_logical": psutil.cpu_count(logical=True) or 1,
        "frequency_mhz": freq.current if freq else None,
    }


def get_memory_metrics() -> dict:
    mem = psutil.virtual_memory()
    return {
        "total_gb": round(mem.total / (1024**3), 2),
        "available_gb": round(mem.available / (1024**3), 2),
        "used_gb": round(mem.used / (1024**3), 2),
        "percent": mem.percent,
    }


def get_disk_metrics(path: str = "/") -> dict:
    if platform.system() == "Windows" and path == "/":
        path = os.environ.get("SystemDrive", "C:") + "\\"
    disk = psutil.disk_usage(path)
    return {
        "total_gb": round(disk.total / (1024**3), 2),
        "used_gb": round(disk.used / (1024**3), 2),
        "free_gb": round(disk.free / (1024**3), 2),
        "percent": disk.percent,
    }


def get_network_metrics() -> dict:
    net = psutil.net_io_counters()
    if net is None:
        return {"bytes_sent_mb": 0.0, "bytes_received_mb": 0.0}
    return {
        "bytes_sent_mb": round(net.bytes_sent / (1024**2), 2),
        "bytes_received_mb": round(net.bytes_recv / (1024**2), 2),
    }


def get_logged_in_users() -> list[dict]:
    users = []
    for u in psutil.users():
        users.append({
            "name": u.name,
            "terminal": u.terminal or "",
            "host": u.host or "",
            "started": datetime.fromtimestamp(u.started, tz=timezone.utc).isoformat(),
        })
    return users


def get_top_processes(limit: int = 15) -> list[dict]:
    """Top processes by memory share. Vanished or protected processes are skipped."""
    procs = []
    for proc in psutil.process_iter(["pid", "name", "memory_percent", "status"]):
        try:
            info = proc.info
            procs.append({
                "pid": info["pid"],
                "name": info.get("name") or f"pid {info['pid']}",
                "memory_percent": round(info.get("memory_percent") or 0.0, 2),
                "status": info.get("status") or "unknown",
            })
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    procs.sort(key=lambda p: p["memory_percent"], reverse=True)
    return procs[:limit]


def _format_uptime(seconds: float) -> str:
    days, rem = divmod(int(seconds), 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days:
        return f"{days}d {hours}h {minutes}m"
    return f"{hours}h {minutes}m"


def _status_from(cpu_pct: float, ram_pct: float, disk_pct: float) -> str:
    worst = max(cpu_pct, ram_pct, disk_pct)
    if worst >= 90:
        return "Critical"
    if worst >= 75:
        return "Degraded"
    return "Healthy"


def collect_context(process_limit: int = 15) -> dict:
    """Snapshot the local machine as a context tree.

    Shape: system, cpu, memory, disk, network, users, processes, status,
    uptime, alerts. Sub-collectors that fail are logged and left out.
    """
    context: dict = {
        "system": {
            "hostname": platform.node(),
            "platform": platform.system(),
            "platform_version": platform.release(),
            "python_version": platform.python_version(),
            "collected_at": datetime.now(timezone.utc).isoformat(),
        },
    }

    collectors = [
        ("cpu", get_cpu_metrics),
        ("memory", get_memory_metrics),
        ("disk", get_disk_metrics),
        ("network", get_network_metrics),
        ("users", get_logged_in_users),
        ("processes", lambda: get_top_processes(process_limit)),
    ]
    for key, fn in collectors:
        try:
            context[key] = fn()
        except Exception:
            logger.warning("Failed to collect %s telemetry", key, exc_info=True)

    cpu_pct = context.get("cpu", {}).get("percent", 0)
    ram_pct = context.get("memory", {}).get("percent", 0)
    disk_pct = context.get("disk", {}).get("percent", 0)

    alerts = []
    for label, pct in (("CPU", cpu_pct), ("Memory", ram_pct), ("Disk", disk_pct)):
        if pct >= 90:
            alerts.append({"severity": "critical", "message": f"{label} usage at {pct:.0f}%"})
        elif pct >= 75:
            alerts.append({"severity": "warning", "message": f"{label} usage at {pct:.0f}%"})

    try:
        uptime = _format_uptime(time.time() - psutil.boot_time())
    except Exception:
        logger.debug("Boot time unavailable", exc_info=True)
        uptime = "Unknown"

    context["status"] = _status_from(cpu_pct, ram_pct, disk_pct)
    context["uptime"] = uptime
    context["alerts"] = alerts
    return context
