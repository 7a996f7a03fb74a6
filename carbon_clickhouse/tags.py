"""Normalisation of tagged metric names.

Graphite-style "name;tag=value" paths and Prometheus label sets are
turned into the "name?tag=value&..." form stored in ClickHouse. Plain
paths can optionally be converted into tagged ones with templates.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from . import escape


@dataclass
class TemplateDesc:
    """A compiled template: filter, path layout and extra tags."""

    filter: re.Pattern
    template: list[str]
    extra_tags: dict[str, str]


def _make_regexp(filter_: str) -> re.Pattern:
    if not filter_:
        # any path with at least one dot
        return re.compile(r"\.")
    begin, end = "^", r"\Z"
    if filter_.startswith("*"):
        begin = ""
        filter_ = filter_[1:]
    if filter_.endswith("*"):
        end = ""
        filter_ = filter_[:-1]
    pattern = begin + filter_.replace(".", r"\.").replace("*", r"[^\.]*") + end
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid template filter {filter_!r}: {exc}") from None


def _make_tag_map(tag_map: dict[str, str], tags: list[str]) -> None:
    if not tags or tags[0] == "":
        return
    for tag in tags:
        parts = tag.split("=")
        if len(parts) < 2:
            raise ValueError(f"invalid tag {tag!r}")
        tag_map[parts[0]] = parts[1]


@dataclass
class TagConfig:
    """Settings for converting plain graphite paths into tagged ones."""

    enabled: bool = False
    separator: str = ""
    tags: list[str] = field(default_factory=list)
    templates: list[str] = field(default_factory=list)
    tag_map: dict[str, str] = field(default_factory=dict)
    template_descs: list[TemplateDesc] = field(default_factory=list)

    def configure(self) -> None:
        """Compile tags and templates; raise ValueError on a bad template."""
        self.tag_map = {}
        _make_tag_map(self.tag_map, self.tags)

        descs: list[TemplateDesc] = []
        for line in self.templates:
            tokens = [token.strip() for token in line.split(" ") if token.strip()]
            if not tokens or len(tokens) > 3:
                raise ValueError("wrong template format")

            filter_ = template = tags = ""
            if len(tokens) == 2:
                if "=" in tokens[1]:
                    template, tags = tokens
                else:
                    filter_, template = tokens
            elif len(tokens) == 3:
                filter_, template, tags = tokens
            else:
                template = tokens[0]

            extra_tags: dict[str, str] = {}
            _make_tag_map(extra_tags, tags.split(","))
            descs.append(
                TemplateDesc(
                    filter=_make_regexp(filter_),
                    template=template.split("."),
                    extra_tags=extra_tags,
                )
            )
        self.template_descs = descs

    def _to_graphite_tagged(self, s: str) -> str:
        for desc in self.template_descs:
            if not desc.filter.search(s):
                continue

            tag_map = dict(self.tag_map)
            tag_map.update(desc.extra_tags)

            names = s.split(".")
            template = desc.template
            if (
                len(names) != len(template) and not template[-1].endswith("*")
            ) or len(names) < len(template):
                continue

            measurement = ""
            for i, name in enumerate(names):
                if i >= len(template):
                    break
                part = template[i]
                if part == "":
                    continue
                if part == "measurement":
                    measurement += name + self.separator
                elif part == "measurement*":
                    measurement += self.separator.join(names[i:])
                    break
                elif part in tag_map:
                    tag_map[part] = tag_map[part] + self.separator + name
                else:
                    tag_map[part] = name

            if measurement.endswith("_"):
                measurement = measurement[:-1]

            return measurement + "".join(f";{k}={v}" for k, v in tag_map.items())
        return ""


def graphite(config: TagConfig, s: str) -> str:
    """Normalise a graphite path; "name;k=v" becomes "name?k=v".

    Tags are sorted by key and the last value of a repeated key wins.
    Raises ValueError for a malformed tagged path.
    """
    if ";" not in s and config.enabled:
        s = config._to_graphite_tagged(s)

    if ";" not in s:
        return s

    name, *segments = s.split(";")
    if not name:
        raise ValueError(f"cannot parse path {s!r}, no metric found")

    for segment in segments:
        if segment.find("=") < 1:
            raise ValueError(f"cannot parse path {s!r}, invalid segment {segment!r}")

    segments.sort(key=lambda segment: segment[: segment.index("=")])

    unique: dict[str, str] = {}
    for segment in segments:
        key, _, value = segment.partition("=")
        unique[key] = value

    tail = "&".join(
        f"{escape.query(key)}={escape.query(value)}" for key, value in unique.items()
    )
    return escape.path(name) + "?" + tail


def prometheus(labels: Iterable[tuple[str, str]]) -> str:
    """Build a tagged name from (name, value) label pairs.

    The "__name__" label becomes the path; the remaining labels follow
    sorted by name. The input is not modified.
    """
    items = [(str(name), str(value)) for name, value in labels]

    offset = 0
    for i, (name, _) in enumerate(items):
        if name == "__name__":
            items[0], items[i] = items[i], items[0]
            offset = 1
            break

    items[offset:] = sorted(items[offset:], key=lambda item: item[0])

    head = escape.path(items[0][1]) if offset else ""
    tail = "&".join(
        f"{escape.query(name)}={escape.query(value)}" for name, value in items[1:]
    )
    return head + "?" + tail