from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteStateIdentity:
    """Location of a persisted workspace state.

    Equality over all four fields is the only way a dependency declaration
    is matched to the workspace that owns the state.
    """

    bucket: str = ""
    key: str = ""
    profile: str = ""
    region: str = ""

    def as_json_dict(self) -> dict[str, str]:
        return {
            "bucket": self.bucket,
            "key": self.key,
            "profile": self.profile,
            "region": self.region,
        }

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key} ({self.profile}@{self.region})"


@dataclass(frozen=True)
class DependencyDeclaration:
    """A named remote-state data source declared inside a workspace."""

    name: str
    identity: RemoteStateIdentity
    declaring_file: str
