from __future__ import annotations

from typing import TYPE_CHECKING

from mrsync_core.errors import UnsupportedStateError
from mrsync_core.models import TRACKED_STATES, MergeRequestState
from mrsync_core.reconciler import Reconciler

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from mrsync_core.gl.merge_request import GitLabSource
    from mrsync_core.render import MessageRenderer
    from mrsync_core.telegram.client import TelegramChannel
    from mrsync_store.base import BaseStore


class StrategySelector:
    """Fixed table from tracked merge request state to its Reconciler."""

    def __init__(self, reconcilers: Mapping[MergeRequestState, Reconciler]):
        self._reconcilers: dict[MergeRequestState, Reconciler] = {}
        for state, reconciler in reconcilers.items():
            if state not in TRACKED_STATES:
                raise UnsupportedStateError(f"not a tracked merge request state: {state!r}")
            self._reconcilers[MergeRequestState(state)] = reconciler

    @property
    def states(self) -> tuple[MergeRequestState, ...]:
        return tuple(s for s in TRACKED_STATES if s in self._reconcilers)

    def select(self, state: MergeRequestState) -> Reconciler:
        try:
            return self._reconcilers[MergeRequestState(state)]
        except (KeyError, ValueError):
            raise UnsupportedStateError(f"no reconciler for merge request state {state!r}") from None


def build_selector(
    source: GitLabSource,
    store: BaseStore,
    channel: TelegramChannel,
    project_ids: Sequence[int | str],
    chat_id: int | str,
    renderer: MessageRenderer,
) -> StrategySelector:
    """One Reconciler per tracked state, all sharing the same collaborators."""
    return StrategySelector(
        {
            state: Reconciler(
                state=state,
                source=source,
                store=store,
                channel=channel,
                project_ids=project_ids,
                chat_id=chat_id,
                renderer=renderer,
            )
            for state in TRACKED_STATES
        }
    )
