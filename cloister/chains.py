"""Group sessions that continue the same conversation into chains.

Sessions sharing a project and a (case/whitespace-insensitive) title are
treated as one logical conversation split across files, e.g. after a
compaction or restart. Unrelated sessions with identical titles merge too.
"""
from __future__ import annotations

from typing import Sequence

from cloister.date_utils import iso_to_epoch
from cloister.models import Session


def _chain_key(session: Session) -> tuple[str, str]:
    return session.project, session.title.lower().strip()


def _newest_first(sessions: list[Session]) -> list[Session]:
    return sorted(sessions, key=lambda s: iso_to_epoch(s.lastModified), reverse=True)


def group_sessions_into_chains(sessions: Sequence[Session]) -> list[Session]:
    buckets: dict[tuple[str, str], list[Session]] = {}
    for session in sessions:
        buckets.setdefault(_chain_key(session), []).append(session)

    result: list[Session] = []
    for members in buckets.values():
        if len(members) == 1:
            result.append(members[0])
            continue

        ordered = _newest_first(members)
        chain_id = ordered[0].id
        for index, session in enumerate(ordered):
            result.append(
                session.model_copy(
                    update={
                        "chainId": chain_id,
                        "chainIndex": index,
                        "chainLength": len(ordered),
                    }
                )
            )

    return _newest_first(result)
