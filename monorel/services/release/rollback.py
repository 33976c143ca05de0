"""Explicit undo stack for irreversible release actions.

Actions are pushed only after their side effect is confirmed and undone in
strict LIFO order: host release, then tag, then commit, then registries
(reverse of creation order). Undo is best effort. Each failure is collected
and reported, and never stops the remaining undos.
"""

from __future__ import annotations

from typing import TypeAlias

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok, Result
from monorel.git.repository import Repository
from monorel.services.release import gh
from monorel.services.release.model import (
    CommitMade,
    RegistryPublished,
    ReleaseCreated,
    RollbackAction,
    TagCreated,
    describe_action,
)
from monorel.services.release.publishers import Publisher

UndoFn: TypeAlias = Callable[[RollbackAction], Result[None, str]]


def _empty_actions() -> list[RollbackAction]:
    return []


@dataclass
class RollbackStack:
    actions: list[RollbackAction] = field(default_factory=_empty_actions)

    def push(self, action: RollbackAction) -> None:
        self.actions.append(action)

    def __len__(self) -> int:
        return len(self.actions)

    def __iter__(self) -> Iterator[RollbackAction]:
        return iter(self.actions)

    def unwind(self, undo: UndoFn) -> tuple[list[RollbackAction], list[str]]:
        """Pop and undo every action, newest first.

        Returns ``(undone, failures)``. The stack is empty afterwards.
        """
        undone: list[RollbackAction] = []
        failures: list[str] = []
        while self.actions:
            action = self.actions.pop()
            result = undo(action)
            if isinstance(result, Err):
                failures.append(f"{describe_action(action)}: {result.error}")
            else:
                undone.append(action)
        return (undone, failures)


@dataclass(frozen=True, slots=True)
class ReleaseUndo:
    """Inverse operation of each rollback action."""

    ctx: RuntimeContext
    repo: Repository
    config: SubmoduleConfig
    publishers: Mapping[str, Publisher]

    def __call__(self, action: RollbackAction) -> Result[None, str]:
        match action:
            case ReleaseCreated(tag=tag):
                deleted = gh.delete_release(self.ctx, self.config.repository, tag)
                if isinstance(deleted, Err):
                    return Err(deleted.error.message)
                return Ok(None)
            case TagCreated(tag=tag):
                removed = self.repo.delete_tag(tag)
                if isinstance(removed, Err):
                    return Err(removed.error.message)
                return Ok(None)
            case CommitMade(sha=sha):
                reverted = self.repo.revert_commit(sha)
                if isinstance(reverted, Err):
                    return Err(reverted.error.message)
                if reverted.value:
                    branch = self.repo.current_branch()
                    if branch is None:
                        return Err(f"reverted {sha[:8]} locally; push the revert manually")
                    pushed = self.repo.push(branch)
                    if isinstance(pushed, Err):
                        return Err(f"reverted {sha[:8]} locally but push failed: {pushed.error.message}")
                return Ok(None)
            case RegistryPublished(target=target, version=version):
                publisher = self.publishers.get(target)
                if publisher is None:
                    return Err(f"no publisher for {target}; retract {version} manually")
                outcome = publisher.retract(version)
                if not outcome.success:
                    return Err(outcome.error or outcome.output or "retract failed")
                return Ok(None)
