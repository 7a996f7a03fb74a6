"""Receiver for Telegraf's HTTP output in JSON format."""

from __future__ import annotations

import json
import math
from http import HTTPStatus

from .. import escape
from ..rowbinary import PointWriter
from .listener import Receiver

_MASK32 = 0xFFFFFFFF


def encode_tags(tags: dict[str, str]) -> str:
    """Encode tags as a sorted query string.

    With several tags a "name" key is renamed to "_name", since "name"
    is reserved for the metric.
    """
    if not tags:
        return ""
    if len(tags) == 1:
        ((key, value),) = tags.items()
        return f"{escape.query(key)}={escape.query(value)}"
    parts = []
    for key in sorted(tags):
        out_key = "_name" if key == "name" else key
        parts.append(f"{escape.query(out_key)}={escape.query(tags[key])}")
    return "&".join(parts)


def _field_value(raw) -> float | None:
    if isinstance(raw, bool):
        return 1.0 if raw else 0.0
    if isinstance(raw, (int, float)):
        return float(raw)
    return None


class TelegrafHttpJson(Receiver):
    """Accepts {"metrics": [...]} documents posted by Telegraf."""

    def handle_payload(self, body) -> tuple[int, str]:
        """Process a request body; return (HTTP status, error text)."""
        try:
            data = json.loads(bytes(body))
            metrics = data.get("metrics") or []
            if not isinstance(metrics, list):
                raise ValueError("metrics must be a list")
            for m in metrics:
                ts = m.get("timestamp", 0)
                if isinstance(ts, bool) or not isinstance(ts, int):
                    raise ValueError(f"invalid timestamp {ts!r}")
        except (ValueError, AttributeError) as exc:
            return HTTPStatus.INTERNAL_SERVER_ERROR, str(exc)

        writer = PointWriter(self.write_queue, self.stop_event)
        for m in metrics:
            name = str(m.get("name") or "")
            timestamp = m.get("timestamp", 0)
            tags = encode_tags({str(k): str(v) for k, v in (m.get("tags") or {}).items()})
            for field_name, raw in (m.get("fields") or {}).items():
                value = _field_value(raw)
                if value is None or math.isnan(value):
                    continue
                path = escape.path(name)
                if field_name != "value":
                    path += self.concat + escape.path(str(field_name))
                path += "?" + tags
                if self.is_drop_point(path, writer.now, timestamp & _MASK32, value):
                    break
                writer.write_point(path, value, timestamp)

        writer.flush()
        if writer.points_written:
            self._add_stat("samplesReceived", writer.points_written)
        if writer.write_errors:
            self._add_stat("errors", writer.write_errors)
        return HTTPStatus.OK, ""

    def listen(self, host: str, port: int) -> None:
        """Serve HTTP on host:port until stopped."""
        self._serve_http(host, port, self.handle_payload)

    def stat(self, send) -> None:
        self.send_stat(
            send, "samplesReceived", "errors", "futureDropped", "pastDropped", "tooLongDropped"
        )