from __future__ import annotations

from pathlib import Path

import pytest

from solaris.exceptions import ExtractionError
from solaris.planner import plan
from solaris.registry import build_registry
from solaris.remote_state import DependencyDeclaration, RemoteStateIdentity
from solaris.resolver import resolve
from solaris.terraform import (
    TerraformExtractor,
    backend_identity,
    discover_workspaces,
    extract_workspace,
    output_declarations,
    remote_state_dependencies,
    variable_references,
)


def _state(key: str) -> RemoteStateIdentity:
    return RemoteStateIdentity(bucket="tfstate", key=key, profile="ops", region="eu-west-1")


def test_discover_skips_ignored_directories(tmp_path: Path, write_tf) -> None:
    write_tf(tmp_path / "net" / "main.tf", 'output "a" {\n  value = "1"\n}\n')
    write_tf(tmp_path / "net" / ".terraform" / "modules" / "x" / "main.tf", "")
    write_tf(tmp_path / "modules" / "vpc" / "main.tf", "")
    write_tf(tmp_path / "docs" / "README.md", "no terraform here")
    found = discover_workspaces(tmp_path)
    assert list(found) == ["net"]
    assert found["net"] == tmp_path / "net"


def test_discover_with_custom_patterns(tmp_path: Path, write_tf) -> None:
    write_tf(tmp_path / "main.tf", "")
    write_tf(tmp_path / "modules" / "vpc" / "main.tf", "")
    write_tf(tmp_path / "sandbox" / "main.tf", "")
    found = discover_workspaces(tmp_path, ignore=["sandbox"])
    assert sorted(found) == [".", "modules/vpc"]


def test_extract_workspace_reads_modern_syntax(terraform_tree: Path) -> None:
    result = extract_workspace("db", terraform_tree / "db")
    assert result.backend is not None
    assert result.backend.identity == _state("db/terraform.tfstate")
    assert result.backend.declaring_file == "backend.tf"
    (dependency,) = result.dependencies
    assert dependency.name == "net"
    assert dependency.identity == _state("net/terraform.tfstate")
    assert dependency.declaring_file == "remote.tf"
    (reference,) = result.references
    assert reference.dependency_name == "net"
    assert reference.output_name == "vpc_id"
    assert reference.full_text == "data.terraform_remote_state.net.outputs.vpc_id"
    assert reference.declaring_file == "main.tf"
    assert [output.name for output in result.outputs] == ["endpoint"]


def test_extract_workspace_reads_legacy_syntax(tmp_path: Path, write_tf) -> None:
    write_tf(
        tmp_path / "app" / "main.tf",
        """
        data "terraform_remote_state" "db" {
          backend = "s3"
          config {
            bucket  = "tfstate"
            key     = "db/terraform.tfstate"
            profile = "ops"
            region  = "eu-west-1"
          }
        }

        resource "aws_instance" "app" {
          ami  = "ami-1"
          tags = {
            Endpoint = "${data.terraform_remote_state.db.endpoint}"
          }
        }
        """,
    )
    result = extract_workspace("app", tmp_path / "app")
    assert result.backend is None
    (dependency,) = result.dependencies
    assert dependency.identity == _state("db/terraform.tfstate")
    (reference,) = result.references
    assert reference.full_text == "${data.terraform_remote_state.db.endpoint}"
    assert reference.output_name == "endpoint"


def test_variable_references_accepts_both_forms() -> None:
    raw = (
        'a = "${data.terraform_remote_state.net.vpc_id}"\n'
        "b = data.terraform_remote_state.net.outputs.subnet_ids[0]\n"
        'c = "${data.terraform_remote_state.dns.outputs.zone_id}"\n'
    )
    found = [(ref.dependency_name, ref.output_name) for ref in variable_references(raw, "x.tf")]
    assert found == [("net", "vpc_id"), ("net", "subnet_ids"), ("dns", "zone_id")]


def test_unparsable_file_raises_extraction_error(tmp_path: Path, write_tf) -> None:
    path = write_tf(tmp_path / "broken" / "main.tf", 'resource "x" {\n  = = =\n')
    with pytest.raises(ExtractionError) as excinfo:
        extract_workspace("broken", tmp_path / "broken")
    assert excinfo.value.path == str(path)


def test_extractor_collects_runbooks(terraform_tree: Path) -> None:
    (terraform_tree / "app" / "PreManual.md").write_text(
        "Check {{ db.endpoint }} first.\n", encoding="utf-8"
    )
    extractor = TerraformExtractor(base=terraform_tree, jobs=2)
    extraction = extractor.extract()
    assert [result.root for result in extraction.results] == ["app", "db", "net"]
    assert set(extraction.runbooks) == {"app"}
    assert extraction.runbooks["app"].pre.startswith("Check")
    assert extraction.runbooks["app"].post is None
    assert extractor.directory_of("db") == terraform_tree / "db"


# Newer python-hcl2 releases keep the quotes on block labels and string values.
_QUOTED_LABEL_PAYLOAD = {
    "terraform": [
        {
            "backend": [
                {
                    '"s3"': {
                        "bucket": '"tfstate"',
                        "key": '"db/terraform.tfstate"',
                        "profile": '"ops"',
                        "region": '"eu-west-1"',
                        "__is_block__": True,
                    }
                }
            ],
            "__is_block__": True,
        }
    ],
    "data": [
        {
            '"terraform_remote_state"': {
                '"net"': {
                    "backend": '"s3"',
                    "config": {
                        "bucket": '"tfstate"',
                        "key": '"net/terraform.tfstate"',
                        "profile": '"ops"',
                        "region": '"eu-west-1"',
                    },
                    "__is_block__": True,
                }
            }
        },
        {'"aws_ami"': {'"base"': {"most_recent": True, "__is_block__": True}}},
    ],
    "output": [{'"endpoint"': {"value": '"db.internal"', "__is_block__": True}}],
}


def test_quoted_label_payload_yields_dependencies() -> None:
    assert remote_state_dependencies(_QUOTED_LABEL_PAYLOAD, "remote.tf") == [
        DependencyDeclaration(
            name="net", identity=_state("net/terraform.tfstate"), declaring_file="remote.tf"
        )
    ]


def test_quoted_label_payload_yields_backend_and_outputs() -> None:
    assert backend_identity(_QUOTED_LABEL_PAYLOAD) == _state("db/terraform.tfstate")
    (output,) = output_declarations(_QUOTED_LABEL_PAYLOAD, "outputs.tf")
    assert output.name == "endpoint"
    assert output.value == "db.internal"


def test_unquoted_label_payload_yields_dependencies() -> None:
    payload = {
        "data": [
            {
                "terraform_remote_state": {
                    "net": {
                        "backend": "s3",
                        "config": [
                            {
                                "bucket": "tfstate",
                                "key": "net/terraform.tfstate",
                                "profile": "ops",
                                "region": "eu-west-1",
                            }
                        ],
                    }
                }
            }
        ]
    }
    (dependency,) = remote_state_dependencies(payload, "remote.tf")
    assert dependency.name == "net"
    assert dependency.identity == _state("net/terraform.tfstate")


def test_parallel_extraction_matches_sequential(terraform_tree: Path) -> None:
    sequential = TerraformExtractor(base=terraform_tree, jobs=1).extract()
    parallel = TerraformExtractor(base=terraform_tree, jobs=4).extract()
    assert parallel.results == sequential.results
    assert parallel.runbooks == sequential.runbooks

    plans = [
        plan(resolve(build_registry(extraction.results, extraction.runbooks)))
        for extraction in (sequential, parallel)
    ]
    assert plans[0] == plans[1]
    assert plans[1].as_json_list() == [["net"], ["db"], ["app"]]
