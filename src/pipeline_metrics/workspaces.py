"""Registry of configured Linear workspaces and their credentials."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Tuple

from .config import Config
from .errors import AuthenticationError, ConfigurationError
from .models import Workspace

AGGREGATE_WORKSPACE_ID = "all"
AGGREGATE_WORKSPACE = Workspace(id=AGGREGATE_WORKSPACE_ID, name="All Workspaces")


def is_aggregate(workspace_id: str) -> bool:
    """Return True when ``workspace_id`` denotes the cross-workspace view."""
    return workspace_id == AGGREGATE_WORKSPACE_ID


class WorkspaceRegistry:
    """Static mapping of workspace ids to Linear API keys.

    Every configured workspace is listed for display, but only workspaces with
    a credential take part in fan-out.
    """

    def __init__(self, workspace_ids: Iterable[str], api_keys: Mapping[str, str]) -> None:
        self._workspaces: Tuple[Workspace, ...] = tuple(
            Workspace(id=workspace_id, name=f"Workspace - {workspace_id}") for workspace_id in workspace_ids
        )
        self._api_keys: Dict[str, str] = {
            workspace_id: key for workspace_id, key in api_keys.items() if key
        }

    @classmethod
    def from_config(cls, config: Config) -> "WorkspaceRegistry":
        return cls(config.workspace_ids, config.api_keys)

    def list_workspaces(self, include_aggregate: bool = True) -> Tuple[Workspace, ...]:
        """List workspaces for display, the aggregate view first."""
        if include_aggregate:
            return (AGGREGATE_WORKSPACE,) + self._workspaces
        return self._workspaces

    def active_workspaces(self) -> Tuple[Workspace, ...]:
        """List workspaces that have a credential and can be fetched."""
        return tuple(workspace for workspace in self._workspaces if workspace.id in self._api_keys)

    def get(self, workspace_id: str) -> Workspace:
        for workspace in self.list_workspaces():
            if workspace.id == workspace_id:
                return workspace
        raise ConfigurationError(f"Unknown workspace '{workspace_id}'.")

    def credential_for(self, workspace_id: str) -> str:
        """Return the API key for a concrete workspace.

        Raises:
            ConfigurationError: For the aggregate view or an unknown workspace.
            AuthenticationError: If the workspace has no API key configured.
        """
        if is_aggregate(workspace_id):
            raise ConfigurationError("The aggregate workspace has no credential of its own.")

        self.get(workspace_id)
        key = self._api_keys.get(workspace_id)
        if not key:
            raise AuthenticationError(f"No API key found for workspace '{workspace_id}'.")
        return key
