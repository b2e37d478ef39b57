from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from solaris.exceptions import MalformedReferenceError

_TOKEN_RE = re.compile(r"\{\{(?P<body>.*?)\}\}", re.DOTALL)


@dataclass(frozen=True)
class RunbookReference:
    token: str
    fragment: str
    output_name: str


def parse_token(token: str, *, workspace: str | None = None) -> RunbookReference:
    body = token
    if body.startswith("{{") and body.endswith("}}"):
        body = body[2:-2]
    segments = body.strip().split(".", 1)
    if len(segments) != 2:
        raise MalformedReferenceError(token, workspace=workspace)
    fragment, output_name = (segment.strip() for segment in segments)
    if not fragment or not output_name:
        raise MalformedReferenceError(token, workspace=workspace)
    return RunbookReference(token=token, fragment=fragment, output_name=output_name)


def scan_references(
    text: str, *, workspace: str | None = None
) -> list[RunbookReference]:
    """Return every ``{{ fragment.output }}`` token in order of appearance.

    Repeated tokens are reported once.
    """
    seen: set[str] = set()
    references: list[RunbookReference] = []
    for match in _TOKEN_RE.finditer(text):
        token = match.group(0)
        if token in seen:
            continue
        seen.add(token)
        references.append(parse_token(token, workspace=workspace))
    return references


def substitute(text: str, values: Mapping[str, str]) -> str:
    rendered = text
    for token, value in values.items():
        rendered = rendered.replace(token, value)
    return rendered
