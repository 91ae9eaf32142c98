"""Transcript accumulation over a stream of recognition events.

Two texts are derived from a session and must not be mixed up:

* the *preview*, ``trim(accumulated_final + current_interim)``, shown live;
* the *committed fragment*, the trimmed text of the utterance just
  finalized, which the caller appends to its document.

Handing the whole accumulated transcript to the caller as if it were a new
fragment would duplicate text in the document, so delivery is tracked by
offset and every finalized character is handed over exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from models import FlushPolicy, RecognitionEvent, RecognitionKind, Session

logger = logging.getLogger(__name__)


@dataclass
class Reduction:
    preview: Optional[str] = None
    committed: Optional[str] = None
    terminal: bool = False


class TranscriptAccumulator:
    def __init__(self, flush_policy: FlushPolicy = FlushPolicy.INCREMENTAL) -> None:
        self.flush_policy = flush_policy

    @staticmethod
    def preview(session: Session) -> str:
        return (session.accumulated_final + session.current_interim).strip()

    @staticmethod
    def committed(session: Session) -> str:
        return session.accumulated_final.strip()

    def apply(self, session: Session, event: RecognitionEvent) -> Reduction:
        if session.closed:
            logger.debug("ignoring %s after session closed", event.kind.value)
            return Reduction()

        if event.kind == RecognitionKind.INTERIM:
            session.current_interim = event.text
            return Reduction(preview=self._changed_preview(session))

        if event.kind == RecognitionKind.FINAL:
            if not event.text.strip():
                return Reduction()
            session.accumulated_final += event.text + " "
            session.current_interim = ""
            committed = None
            if self.flush_policy == FlushPolicy.INCREMENTAL:
                committed = event.text.strip()
                session.delivered_chars = len(session.accumulated_final)
            return Reduction(preview=self._changed_preview(session), committed=committed)

        if event.kind == RecognitionKind.ERROR and event.recoverable:
            logger.info("recoverable recognition error %s: %s", event.code, event.message)
            return Reduction()

        # Unrecoverable error or end of stream: the transcript is frozen.
        session.closed = True
        session.current_interim = ""
        return Reduction(terminal=True)

    def take_unflushed(self, session: Session) -> str:
        """Return finalized text not yet handed to the caller and mark it delivered."""
        text = session.accumulated_final[session.delivered_chars:].strip()
        session.delivered_chars = len(session.accumulated_final)
        return text

    @staticmethod
    def reset(session: Session) -> None:
        session.accumulated_final = ""
        session.current_interim = ""
        session.delivered_chars = 0
        session.last_preview = ""

    @staticmethod
    def _changed_preview(session: Session) -> Optional[str]:
        preview = TranscriptAccumulator.preview(session)
        if preview == session.last_preview:
            return None
        session.last_preview = preview
        return preview
