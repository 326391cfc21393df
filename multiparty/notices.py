"""
Values handed to the host's notify sink. The core never renders UI; `text`
is a plain-language line a host may show as-is or replace with its own copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple


logger = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    MESSAGE_INTEGRITY = "message_integrity"
    REPLAY = "replay"
    TAG_FAILURE = "tag_failure"
    MALFORMED_PLAINTEXT = "malformed_plaintext"
    MISSING_RECIPIENTS = "missing_recipients"
    UNKNOWN_TYPE = "unknown_type"


_TEXT = {
    NoticeKind.MESSAGE_INTEGRITY: "A message from {sender} failed its integrity check and was discarded.",
    NoticeKind.REPLAY: "A message from {sender} reused an IV (possible replay attack) and was discarded.",
    NoticeKind.TAG_FAILURE: "A message from {sender} had an inconsistent recipient set and was discarded.",
    NoticeKind.MALFORMED_PLAINTEXT: "A message from {sender} was malformed and was discarded.",
    NoticeKind.MISSING_RECIPIENTS: "A message from {sender} was not sent to: {missing}.",
    NoticeKind.UNKNOWN_TYPE: "{sender} sent a message of an unknown type.",
}


@dataclass(frozen=True)
class ProtocolNotice:
    kind: NoticeKind
    sender: str
    missing: Tuple[str, ...] = ()

    @property
    def text(self) -> str:
        return _TEXT[self.kind].format(sender=self.sender, missing=", ".join(self.missing))


NotifySink = Callable[[ProtocolNotice], None]


def log_notice(notice: ProtocolNotice) -> None:
    """Default sink when the host does not supply one."""
    logger.warning("%s: %s", notice.kind.value, notice.text)
