from __future__ import annotations

import sys
import textwrap
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest


@pytest.fixture
def write_tf():
    def _write(path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
        return path

    return _write


def _backend(key: str) -> str:
    return f"""
    terraform {{
      backend "s3" {{
        bucket  = "tfstate"
        key     = "{key}"
        profile = "ops"
        region  = "eu-west-1"
      }}
    }}
    """


def _remote_state(name: str, key: str) -> str:
    return f"""
    data "terraform_remote_state" "{name}" {{
      backend = "s3"
      config = {{
        bucket  = "tfstate"
        key     = "{key}"
        profile = "ops"
        region  = "eu-west-1"
      }}
    }}
    """


@pytest.fixture
def terraform_tree(tmp_path: Path, write_tf) -> Path:
    """net <- db <- app, three workspaces below ``tmp_path/live``."""
    base = tmp_path / "live"
    write_tf(base / "net" / "backend.tf", _backend("net/terraform.tfstate"))
    write_tf(
        base / "net" / "main.tf",
        """
        output "vpc_id" {
          value = "vpc-123"
        }
        """,
    )
    write_tf(base / "db" / "backend.tf", _backend("db/terraform.tfstate"))
    write_tf(base / "db" / "remote.tf", _remote_state("net", "net/terraform.tfstate"))
    write_tf(
        base / "db" / "main.tf",
        """
        resource "aws_db_subnet_group" "main" {
          name       = "main"
          subnet_ids = [data.terraform_remote_state.net.outputs.vpc_id]
        }

        output "endpoint" {
          value = aws_db_subnet_group.main.name
        }
        """,
    )
    write_tf(base / "app" / "backend.tf", _backend("app/terraform.tfstate"))
    write_tf(base / "app" / "remote.tf", _remote_state("db", "db/terraform.tfstate"))
    write_tf(
        base / "app" / "main.tf",
        """
        locals {
          db_endpoint = data.terraform_remote_state.db.outputs.endpoint
        }
        """,
    )
    return base
