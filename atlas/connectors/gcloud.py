# =============================================================================
# Google Cloud Connector — Logging, Kubernetes Events, Monitoring
# =============================================================================
#
# The clusters are private, so everything about them is read through
# Google's APIs rather than the Kubernetes API:
#   - Cloud Logging entries:list   → container logs, pod events (k8s_pod),
#                                     Helm release events (k8s_cluster)
#   - Cloud Monitoring timeSeries  → restart_count, memory, cpu, uptime
#
# Environments are aliases configured in GCLOUD_ENVIRONMENTS
# ({"prod": "acme-k8s-prod", ...}); the model names an environment and the
# connector resolves it to a project ID.
# =============================================================================

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from atlas.connectors.base import HTTPConnector, as_int, failure_as_text
from atlas.services.text import truncate

logger = logging.getLogger(__name__)

LOGGING_ENTRIES_URL = "https://logging.googleapis.com/v2/entries:list"
MONITORING_URL = "https://monitoring.googleapis.com/v3/projects"

MAX_MESSAGE_LENGTH = 1500
SEVERITIES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
PROBLEM_REASONS = ("Unhealthy", "Killing", "BackOff", "OOMKilling", "Failed")

RESOURCE_METRICS = {
    "memory": "kubernetes.io/container/memory/used_bytes",
    "cpu": "kubernetes.io/container/cpu/usage_time",
    "uptime": "kubernetes.io/container/uptime",
}
RESTART_METRIC = "kubernetes.io/container/restart_count"

_FRACTIONAL_SECONDS = re.compile(r"\.\d+Z$")


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).replace(microsecond=0).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )


def _hours(value: Any, default: int) -> int:
    return as_int(value, default) if value else default


def _escape(value: str) -> str:
    return value.strip().replace("\\", "\\\\").replace('"', '\\"')


def _short_timestamp(value: str | None) -> str:
    return _FRACTIONAL_SECONDS.sub("Z", value or "")


def timestamp_filter(
    hours_ago: int,
    start_time: str | None = None,
    end_time: str | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Logging filter clauses for an absolute window, else the last N hours."""
    if start_time and start_time.strip():
        parts = [f'timestamp>="{start_time.strip()}"']
        if end_time and end_time.strip():
            parts.append(f'timestamp<="{end_time.strip()}"')
        return parts
    since = (now or datetime.now(timezone.utc)) - timedelta(hours=hours_ago)
    return [f'timestamp>="{_iso(since)}"']


def monitoring_window(
    hours_ago: int,
    start_time: str | None = None,
    end_time: str | None = None,
    now: datetime | None = None,
) -> tuple[str, str]:
    """(start, end) for a Monitoring interval; end defaults to now."""
    now = now or datetime.now(timezone.utc)
    if start_time and start_time.strip():
        end = end_time.strip() if end_time and end_time.strip() else _iso(now)
        return start_time.strip(), end
    return _iso(now - timedelta(hours=hours_ago)), _iso(now)


def _labels(item: dict) -> dict:
    return (item.get("resource") or {}).get("labels") or {}


def _first_point(series: dict) -> Any:
    points = series.get("points") or []
    if not points:
        return None
    value = points[0].get("value") or {}
    return value.get("int64Value", value.get("doubleValue"))


class GoogleCloudConnector(HTTPConnector):
    """Read-only access to Cloud Logging and Cloud Monitoring."""

    def __init__(
        self,
        access_token: str,
        environments: dict[str, str],
        **kwargs: Any,
    ) -> None:
        super().__init__(
            "https://logging.googleapis.com",
            headers={"Authorization": f"Bearer {access_token}"},
            **kwargs,
        )
        self.environments = {k.strip().lower(): v for k, v in environments.items()}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def resolve_environment(self, name: str | None) -> str | None:
        if not name:
            return None
        key = name.strip().lower()
        if key in self.environments:
            return self.environments[key]
        # A project ID is accepted as its own alias
        return key if key in self.environments.values() else None

    def _unknown_environment(self, name: str | None) -> str:
        known = ", ".join(sorted(self.environments)) or "(none configured)"
        return f'Unknown environment: "{name or ""}". Use one of: {known}.'

    async def _entries(
        self,
        project_id: str,
        filter_: str,
        page_size: int,
        order_by: str = "timestamp desc",
    ) -> list[dict]:
        data = await self._post(
            LOGGING_ENTRIES_URL,
            {
                "resourceNames": [f"projects/{project_id}"],
                "filter": filter_,
                "orderBy": order_by,
                "pageSize": max(1, min(page_size, 1000)),
            },
        )
        return data.get("entries") or []

    async def _time_series(
        self,
        project_id: str,
        filter_: str,
        window: tuple[str, str],
        page_size: int,
        page_token: str | None = None,
    ) -> tuple[list[dict], str | None]:
        data = await self._get(
            f"{MONITORING_URL}/{project_id}/timeSeries",
            filter=filter_,
            **{
                "interval.startTime": window[0],
                "interval.endTime": window[1],
                "pageSize": max(1, min(page_size, 1000)),
                "pageToken": page_token,
            },
        )
        return data.get("timeSeries") or [], data.get("nextPageToken")

    # -------------------------------------------------------------------------
    # Logs
    # -------------------------------------------------------------------------

    @failure_as_text("Listing applications")
    async def list_applications(self, environment: str = "") -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)

        # Every running container reports uptime, so quiet services show up too
        window = monitoring_window(1)
        names: set[str] = set()
        token = None
        for _ in range(10):
            series, token = await self._time_series(
                project_id, f'metric.type="{RESOURCE_METRICS["uptime"]}"',
                window, 500, token,
            )
            names.update(
                _labels(s).get("container_name") for s in series
                if _labels(s).get("container_name")
            )
            if not token:
                break

        if not names:
            return (
                f'Environment "{environment}" ({project_id}): no applications '
                "found in recent container metrics."
            )
        return (
            f"Environment: {environment} ({project_id})\n"
            f"Applications ({len(names)}): {', '.join(sorted(names))}"
        )

    @failure_as_text("Reading logs")
    async def read_logs(
        self,
        environment: str = "",
        application: str = "",
        severity: str | None = None,
        search_text: str | None = None,
        hours_ago: Any = None,
        limit: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)
        if not application or not application.strip():
            return (
                "Application name is required. Use gcloud_list_applications to "
                "discover application names for the environment."
            )

        app = application.strip()
        hours = _hours(hours_ago, 1)
        parts = [
            'resource.type="k8s_container"',
            f'resource.labels.container_name="{_escape(app)}"',
            *timestamp_filter(hours, start_time, end_time),
        ]
        if severity and severity.upper() in SEVERITIES:
            parts.append(f"severity>={severity.upper()}")
        if search_text and search_text.strip():
            term = _escape(search_text)
            parts.append(f'(textPayload:"{term}" OR jsonPayload.message:"{term}")')

        entries = await self._entries(
            project_id, " AND ".join(parts), as_int(limit, 20, maximum=50)
        )
        absolute = bool(start_time and start_time.strip())
        if not entries:
            when = "in the specified time range" if absolute else f"in the last {hours} hour(s)"
            return (
                f'No log entries found for application "{app}" in {environment} {when}. '
                "Try gcloud_list_applications to confirm the application name, "
                "or broaden the time range or filters."
            )

        if absolute:
            window = f"time range {start_time.strip()}"
            if end_time and end_time.strip():
                window += f" to {end_time.strip()}"
        else:
            window = f"last {hours}h"
        lines = [
            f'Logs for "{app}" in {environment} ({project_id}), {window}, '
            f"{len(entries)} entries:",
            "",
        ]
        for e in entries:
            payload = e.get("jsonPayload") or {}
            message = e.get("textPayload") or payload.get("message") or ""
            lines.append(
                f"[{_short_timestamp(e.get('timestamp'))}] "
                f"{(e.get('severity') or 'DEFAULT').upper()} {app} "
                f"(pod: {_labels(e).get('pod_name', '?')})"
            )
            if payload.get("logger"):
                lines.append(f"Logger: {payload['logger']}")
            lines.append(
                f"Message: {truncate(message, MAX_MESSAGE_LENGTH, '... [truncated]') or '(empty)'}"
            )
            lines.append("---")
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Kubernetes events (via Cloud Logging)
    # -------------------------------------------------------------------------

    @failure_as_text("Getting pod events")
    async def pod_events(
        self,
        environment: str = "",
        application: str | None = None,
        hours_ago: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)

        app = (application or "").strip()
        parts = ['resource.type="k8s_pod"', 'logName:"events"']
        if app:
            parts.append(f'resource.labels.pod_name=~"{_escape(app)}"')
        else:
            reasons = " OR ".join(f'jsonPayload.reason="{r}"' for r in PROBLEM_REASONS)
            parts.append(f"({reasons})")
        parts += timestamp_filter(_hours(hours_ago, 24), start_time, end_time)

        entries = await self._entries(
            project_id, " AND ".join(parts), 50 if app else 100, "timestamp asc"
        )
        if not entries:
            if app:
                return (
                    f'No pod events found for "{app}" in {environment} in the '
                    "specified time range. Try broadening the window or check "
                    "the application name."
                )
            return (
                f"No problematic pod events ({'/'.join(PROBLEM_REASONS)}) found "
                f"in {environment} in the specified time range."
            )

        if app:
            header = f'Pod events for "{app}" in {environment} ({len(entries)} entries):'
        else:
            header = (
                f"Problematic pod events (all applications) in {environment} "
                f"({len(entries)} entries). Pod name prefixes identify the application:"
            )
        lines = [header, ""]
        for e in entries:
            payload = e.get("jsonPayload") or {}
            pod = _labels(e).get("pod_name") or (payload.get("involvedObject") or {}).get("name") or "?"
            lines.append(
                f"{_short_timestamp(e.get('timestamp'))}  {payload.get('reason') or '?'}  "
                f"{pod}  {truncate(payload.get('message') or '', 497)}"
            )
        return "\n".join(lines)

    @failure_as_text("Getting deployment events")
    async def deployment_events(
        self,
        environment: str = "",
        application: str | None = None,
        hours_ago: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)

        app = (application or "").strip()
        parts = [
            'resource.type="k8s_cluster"',
            'logName:"events"',
            'jsonPayload.reportingComponent="helm-controller"',
            *timestamp_filter(_hours(hours_ago, 168), start_time, end_time),
        ]
        if app:
            pattern = _escape(app).replace("[", r"\[")
            parts.append(f'jsonPayload.involvedObject.name=~"{pattern}"')

        entries = await self._entries(project_id, " AND ".join(parts), 50, "timestamp asc")
        if not entries:
            matching = f' matching "{app}"' if app else ""
            return (
                f"No deployment events found for {environment}{matching} "
                "in the specified time range."
            )

        lines = [f"Deployment events (Helm) in {environment} ({len(entries)} entries):", ""]
        for e in entries:
            payload = e.get("jsonPayload") or {}
            name = (payload.get("involvedObject") or {}).get("name") or "?"
            lines.append(
                f"{_short_timestamp(e.get('timestamp'))}  {payload.get('reason') or '?'}  "
                f"{name}  {truncate(payload.get('message') or '', 397)}"
            )
        return "\n".join(lines)

    @failure_as_text("Discovering pods")
    async def discover_pods(self, environment: str = "", application: str = "") -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)
        if not application or not application.strip():
            return "Application name is required."

        app = application.strip()
        entries = await self._entries(
            project_id,
            f'resource.type="k8s_container" AND resource.labels.container_name="{_escape(app)}"',
            100,
        )
        pods: dict[str, dict] = {}
        for e in entries:
            labels = _labels(e)
            if labels.get("pod_name"):
                pods.setdefault(labels["pod_name"], labels)
        if not pods:
            return (
                f'No pods found for application "{app}" in {environment} in recent '
                "logs. Check the application name with gcloud_list_applications."
            )
        lines = [f'Pods for "{app}" in {environment} ({project_id}):', ""]
        lines += [
            f"{name}  namespace: {labels.get('namespace_name', '')}  "
            f"cluster: {labels.get('cluster_name', '')}"
            for name, labels in pods.items()
        ]
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    @failure_as_text("Getting restart count")
    async def restart_count(
        self,
        environment: str = "",
        application: str = "",
        hours_ago: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)
        if not application or not application.strip():
            return "Application (container) name is required."

        app = application.strip()
        window = monitoring_window(_hours(hours_ago, 24), start_time, end_time)
        series, _ = await self._time_series(
            project_id,
            f'metric.type="{RESTART_METRIC}" AND resource.labels.container_name="{_escape(app)}"',
            window, 30,
        )
        if not series:
            return (
                f'No restart_count data for "{app}" in {environment} '
                "in the specified time range."
            )
        lines = [f'Restart count for "{app}" in {environment} ({window[0]} to {window[1]}):', ""]
        for s in series:
            value = _first_point(s)
            count = int(value) if value is not None else "?"
            lines.append(f"{_labels(s).get('pod_name', '?')}: restart_count={count}")
        return "\n".join(lines)

    @failure_as_text("Getting resource usage")
    async def resource_usage(
        self,
        environment: str = "",
        application: str = "",
        metric_type: str = "memory",
        hours_ago: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)
        if not application or not application.strip():
            return "Application (container) name is required."

        kind = (metric_type or "memory").lower()
        if kind not in RESOURCE_METRICS:
            kind = "memory"
        app = application.strip()
        window = monitoring_window(_hours(hours_ago, 24), start_time, end_time)
        series, _ = await self._time_series(
            project_id,
            f'metric.type="{RESOURCE_METRICS[kind]}" AND resource.labels.container_name="{_escape(app)}"',
            window, 30,
        )
        if not series:
            return f'No {kind} data for "{app}" in {environment} in the specified time range.'

        lines = [f'{kind} for "{app}" in {environment} ({window[0]} to {window[1]}):', ""]
        for s in series:
            raw = _first_point(s)
            if raw is None:
                shown = "?"
            elif kind == "memory":
                shown = f"{raw} bytes (~{int(raw) / (1024 * 1024):.2f} MB)"
            elif kind == "cpu":
                shown = f"{raw} seconds (cumulative)"
            else:
                shown = f"{raw} seconds"
            lines.append(f"{_labels(s).get('pod_name', '?')}: {shown}")
        return "\n".join(lines)

    @failure_as_text("Getting restart counts")
    async def restart_count_all(
        self,
        environment: str = "",
        hours_ago: Any = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> str:
        project_id = self.resolve_environment(environment)
        if not project_id:
            return self._unknown_environment(environment)

        window = monitoring_window(_hours(hours_ago, 24), start_time, end_time)
        series, _ = await self._time_series(
            project_id, f'metric.type="{RESTART_METRIC}"', window, 100
        )
        if not series:
            return f"No restart_count data in {environment} in the specified time range."

        rows = sorted(
            (
                (
                    _labels(s).get("container_name", "?"),
                    _labels(s).get("pod_name", "?"),
                    int(_first_point(s) or 0),
                )
                for s in series
            ),
            key=lambda row: row[2],
            reverse=True,
        )
        lines = [
            f"Restart count (all containers) in {environment} ({window[0]} to "
            f"{window[1]}), highest first:",
            "",
            "container_name | pod_name | restart_count",
            "---",
        ]
        lines += [f"{c} | {p} | {n}" for c, p, n in rows]
        return "\n".join(lines)
