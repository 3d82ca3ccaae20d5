from typing import Any


class GameStateMirror:
    """Latest opaque game-state snapshot per game, for recovery after reconnect.

    The broker never interprets the blob; last write wins.
    """

    def __init__(self) -> None:
        self._states: dict[str, Any] = {}  # game_id -> snapshot

    def snapshot(self, game_id: str, state: Any) -> None:  # noqa: ANN401
        self._states[game_id] = state

    def recover(self, game_id: str) -> Any | None:  # noqa: ANN401
        return self._states.get(game_id)

    def discard(self, game_id: str) -> None:
        self._states.pop(game_id, None)

    def __contains__(self, game_id: object) -> bool:
        return game_id in self._states

    def __len__(self) -> int:
        return len(self._states)
