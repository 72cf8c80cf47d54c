"""Asynchronous issue source adapter over the blocking Linear client.

Blocking HTTP calls run on a thread pool so several workspaces, and the
references of every issue, can be in flight at once on a single event loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from .errors import ConfigurationError, NoTeamFoundError
from .linear_client import LinearClient
from .models import IssueNode, Person, Project, RawIssue, WorkflowState
from .workspaces import WorkspaceRegistry, is_aggregate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceContext:
    """Process-wide caches shared by adapters, partitioned by workspace id.

    Workflow states and team ids are never invalidated; they change rarely
    enough that process-lifetime staleness is acceptable.
    """

    def __init__(self) -> None:
        self.clients: Dict[str, LinearClient] = {}
        self.team_ids: Dict[str, str] = {}
        self.workflow_states: Dict[str, List[WorkflowState]] = {}
        self.lock = threading.Lock()


class _ReferenceResolver:
    """Resolves state, user and project references once per fetch.

    States come from the cached workflow-state list; only ids missing from it
    are looked up, and each such id at most once.
    """

    def __init__(
        self,
        run: Callable[..., Awaitable[Any]],
        client: LinearClient,
        states_by_id: Dict[str, WorkflowState],
    ) -> None:
        self._run = run
        self._client = client
        self._states_by_id = states_by_id
        self._states: Dict[str, asyncio.Task] = {}
        self._users: Dict[str, asyncio.Task] = {}
        self._projects: Dict[str, asyncio.Task] = {}

    def _memo(self, cache: Dict[str, asyncio.Task], key: str, func: Callable[[str], Any]) -> asyncio.Task:
        task = cache.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(func, key))
            cache[key] = task
        return task

    async def state(self, state_id: Optional[str]) -> Optional[WorkflowState]:
        if not state_id:
            return None
        cached = self._states_by_id.get(state_id)
        if cached is not None:
            return cached
        return await self._memo(self._states, state_id, self._client.get_workflow_state)

    async def user(self, user_id: Optional[str]) -> Optional[Person]:
        if not user_id:
            return None
        return await self._memo(self._users, user_id, self._client.get_user)

    async def project(self, project_id: Optional[str]) -> Optional[Project]:
        if not project_id:
            return None
        return await self._memo(self._projects, project_id, self._client.get_project)


class IssueSourceAdapter:
    """Per-workspace access to Linear issues with cached lookups."""

    def __init__(
        self,
        registry: WorkspaceRegistry,
        context: Optional[SourceContext] = None,
        max_workers: int = 10,
        page_size: int = 100,
        timeout_seconds: int = 30,
        client_factory: Callable[..., LinearClient] = LinearClient,
    ) -> None:
        self.registry = registry
        self.context = context if context is not None else SourceContext()
        self.max_workers = max_workers
        self.page_size = page_size
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory
        self.executor = ThreadPoolExecutor(max_workers=max_workers)

    async def _run_in_thread(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking callable on the adapter's thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args, **kwargs))

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)

    def get_client(self, workspace_id: str) -> LinearClient:
        """Return the cached client for a workspace, creating it on first use."""
        if is_aggregate(workspace_id):
            raise ConfigurationError("The aggregate workspace cannot be fetched directly; fan out instead.")

        with self.context.lock:
            client = self.context.clients.get(workspace_id)
            if client is None:
                api_key = self.registry.credential_for(workspace_id)
                client = self._client_factory(api_key, timeout_seconds=self._timeout_seconds)
                self.context.clients[workspace_id] = client
        return client

    async def get_team_id(self, workspace_id: str) -> str:
        """Resolve the first team visible to the workspace credential.

        Raises:
            NoTeamFoundError: If the credential cannot see any team.
        """
        cached = self.context.team_ids.get(workspace_id)
        if cached is not None:
            return cached

        client = self.get_client(workspace_id)
        team_ids = await self._run_in_thread(client.list_teams)
        if not team_ids:
            raise NoTeamFoundError(f"No team found for workspace '{workspace_id}'.")

        with self.context.lock:
            team_id = self.context.team_ids.setdefault(workspace_id, team_ids[0])
        logger.debug("Resolved team", extra={"workspace_id": workspace_id, "team_id": team_id})
        return team_id

    async def get_workflow_states(self, client: LinearClient, workspace_id: str) -> List[WorkflowState]:
        """Fetch workflow states once per workspace and cache them indefinitely."""
        cached = self.context.workflow_states.get(workspace_id)
        if cached is not None:
            return cached

        states = await self._run_in_thread(client.list_workflow_states)
        with self.context.lock:
            cached = self.context.workflow_states.setdefault(workspace_id, states)
        logger.debug(
            "Cached workflow states",
            extra={"workspace_id": workspace_id, "state_count": len(cached)},
        )
        return cached

    async def fetch_issues(self, workspace_id: str) -> List[RawIssue]:
        """Fetch the most recently updated issues of a workspace, fully resolved.

        Issue order from Linear is preserved. References of all issues are
        resolved concurrently, so latency tracks the slowest lookup rather
        than the number of issues.
        """
        client = self.get_client(workspace_id)
        team_id, states = await asyncio.gather(
            self.get_team_id(workspace_id),
            self.get_workflow_states(client, workspace_id),
        )
        nodes: List[IssueNode] = await self._run_in_thread(
            client.list_issues, team_id, page_size=self.page_size, order_by="updatedAt"
        )

        resolver = _ReferenceResolver(self._run_in_thread, client, {state.id: state for state in states})
        issues = await asyncio.gather(*(self._resolve_issue(node, resolver) for node in nodes))

        logger.info(
            "Fetched issues",
            extra={"workspace_id": workspace_id, "team_id": team_id, "issue_count": len(issues)},
        )
        return list(issues)

    async def _resolve_issue(self, node: IssueNode, resolver: _ReferenceResolver) -> RawIssue:
        state, assignee, project = await asyncio.gather(
            resolver.state(node.state_id),
            resolver.user(node.assignee_id),
            resolver.project(node.project_id),
        )
        return RawIssue(
            id=node.id,
            title=node.title,
            due_date=node.due_date,
            created_at=node.created_at,
            state=state,
            assignee=assignee,
            project=project,
        )
