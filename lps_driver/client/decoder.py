"""
MODULE OVERVIEW:
Turns the raw `updates` array of a long-poll response into a DecodedBatch.

WHAT IS HAPPENING HERE:
Every update record is a list whose first element is an opcode. We only care
about two families: message mutations (anything that should make a consumer
re-read its conversations) and friend presence. A handful of chatty opcodes are
known and dropped on purpose. Everything else is kept aside for diagnostics.
The server is free to introduce new opcodes, so decoding never raises: a record
we cannot read ends up in `unrecognized` and the rest of the batch carries on.
"""
from typing import Any, Iterable

from lps_driver.shared.models import DecodedBatch

# 0 delete, 1 replace flags, 2 set flags, 3 reset flags, 4 new message,
# 6/7 incoming/outgoing read up to local_id, 51 chat title or members changed
MESSAGE_OPCODES = frozenset({0, 1, 2, 3, 4, 6, 7, 51})

# 8 friend online, 9 friend offline: [opcode, -user_id, extra]
PRESENCE_OPCODES = frozenset({8, 9})

# 61/62 typing, 70 call, 80 unread counter, 114 notification settings
IGNORED_OPCODES = frozenset({61, 62, 70, 80, 114})

def _opcode(record: Any) -> int | None:
    if not isinstance(record, (list, tuple)) or not record:
        return None
    head = record[0]
    if isinstance(head, bool) or not isinstance(head, int):
        return None
    return head

def _user_id(record: Any) -> int | None:
    if len(record) < 2 or isinstance(record[1], bool):
        return None
    try:
        # the server sends the id negated; consumers only want the id itself
        return abs(int(record[1]))
    except (TypeError, ValueError):
        return None

def decode_updates(updates: Iterable[Any]) -> DecodedBatch:
    batch = DecodedBatch()
    for record in updates:
        opcode = _opcode(record)
        if opcode in MESSAGE_OPCODES:
            batch.message_changed_count += 1
        elif opcode in PRESENCE_OPCODES:
            user_id = _user_id(record)
            if user_id is None:
                batch.unrecognized.append(record)
            else:
                batch.affected_user_ids.add(user_id)
        elif opcode in IGNORED_OPCODES:
            continue
        else:
            batch.unrecognized.append(record)
    return batch
