from typing import List, Optional

from pydantic import BaseModel

from solaris.planner import ExecutionPlan
from solaris.registry import Registry
from solaris.remote_state import RemoteStateIdentity


class RemoteStateDTO(BaseModel):
    bucket: str
    key: str
    profile: str
    region: str
    name: Optional[str] = None
    in_file: Optional[str] = None


class OutputRefDTO(BaseModel):
    workspace: str
    output: str


class InputDTO(BaseModel):
    name: str
    full_name: str
    dependency: Optional[RemoteStateDTO] = None
    referes_to: Optional[OutputRefDTO] = None
    in_file: List[str] = []


class OutputDTO(BaseModel):
    name: str
    in_file: str


class WorkspaceDTO(BaseModel):
    root: str
    remote_state: Optional[RemoteStateDTO] = None
    dependencies: List[RemoteStateDTO] = []
    inputs: List[InputDTO] = []
    outputs: List[OutputDTO] = []
    pre_manual: Optional[str] = None
    post_manual: Optional[str] = None


class PlannedWorkspaceDTO(BaseModel):
    root: str
    remote_state: Optional[RemoteStateDTO] = None
    pre_manual_rendered: Optional[str] = None
    post_manual_rendered: Optional[str] = None


class ExecutionPlanDTO(BaseModel):
    tiers: List[List[PlannedWorkspaceDTO]]


def _state_dto(
    identity: RemoteStateIdentity | None,
    *,
    name: str | None = None,
    in_file: str | None = None,
) -> RemoteStateDTO | None:
    if identity is None:
        return None
    return RemoteStateDTO(**identity.as_json_dict(), name=name, in_file=in_file)


def registry_dto(registry: Registry) -> list[WorkspaceDTO]:
    """Serializable view of a resolved registry.

    Back-references are left out and forward references are written as
    ``{workspace, output}`` pairs, so the result is a tree.
    """
    workspaces: list[WorkspaceDTO] = []
    for workspace in registry:
        inputs: list[InputDTO] = []
        for item in registry.inputs_of(workspace.root):
            target = registry.resolved_output(item)
            inputs.append(
                InputDTO(
                    name=item.name,
                    full_name=item.full_reference_text,
                    dependency=_state_dto(item.dependency, name=item.dependency_name),
                    referes_to=(
                        OutputRefDTO(workspace=target.belongs_to, output=target.name)
                        if target is not None
                        else None
                    ),
                    in_file=sorted(item.declaring_files),
                )
            )
        workspaces.append(
            WorkspaceDTO(
                root=workspace.root,
                remote_state=_state_dto(
                    workspace.identity, in_file=workspace.identity_file
                ),
                dependencies=[
                    _state_dto(
                        declaration.identity,
                        name=declaration.name,
                        in_file=declaration.declaring_file,
                    )
                    for declaration in workspace.dependencies
                ],
                inputs=inputs,
                outputs=[
                    OutputDTO(name=output.name, in_file=output.declaring_file)
                    for output in registry.outputs_of(workspace.root)
                ],
                pre_manual=workspace.pre_runbook,
                post_manual=workspace.post_runbook,
            )
        )
    return workspaces


def plan_dto(
    registry: Registry,
    plan: ExecutionPlan,
    manuals: dict[str, tuple[str | None, str | None]] | None = None,
) -> ExecutionPlanDTO:
    manuals = manuals or {}
    tiers: list[list[PlannedWorkspaceDTO]] = []
    for tier in plan:
        entries: list[PlannedWorkspaceDTO] = []
        for root in tier:
            workspace = registry.workspace(root)
            pre, post = manuals.get(root, (None, None))
            entries.append(
                PlannedWorkspaceDTO(
                    root=root,
                    remote_state=_state_dto(
                        workspace.identity, in_file=workspace.identity_file
                    ),
                    pre_manual_rendered=pre,
                    post_manual_rendered=post,
                )
            )
        tiers.append(entries)
    return ExecutionPlanDTO(tiers=tiers)
