"""
MODULE OVERVIEW:
Background chatter for the sandbox: an infinite async generator of realistic
update batches so a watching driver has something to decode.

WHAT IS HAPPENING HERE:
Each batch mixes the record shapes a real server sends: new messages, read
receipts, friends going online/offline, and the noise the driver ignores
(typing, unread counter). Now and then it also sends an opcode nobody knows,
which should show up as an `unknown_update` warning on the client.
"""

import asyncio
import random
import time
from typing import Any, AsyncGenerator, List

PEERS = [101, 202, 303, 2000000001]
FRIENDS = [11, 22, 33, 44]
TEXTS = ["hi", "are you there?", "see you at 5", "ok", "lol"]

def random_update(message_id: int) -> List[Any]:
    roll = random.random()
    if roll < 0.35:
        return [4, message_id, 1, random.choice(PEERS), int(time.time()), random.choice(TEXTS), {}]
    if roll < 0.5:
        return [random.choice([6, 7]), random.choice(PEERS), message_id]
    if roll < 0.75:
        return [random.choice([8, 9]), -random.choice(FRIENDS), random.randint(0, 7)]
    if roll < 0.9:
        return [61, random.choice(FRIENDS), 1]
    if roll < 0.97:
        return [80, random.randint(0, 20), 0]
    return [random.randint(200, 299), message_id]

async def chatter_generator(interval_s: float) -> AsyncGenerator[List[List[Any]], None]:
    """Emits a batch of 1-4 update records every `interval_s` (jittered)."""
    message_id = 1000
    while True:
        batch = []
        for _ in range(random.randint(1, 4)):
            message_id += 1
            batch.append(random_update(message_id))
        yield batch
        await asyncio.sleep(random.uniform(0.5 * interval_s, 1.5 * interval_s))
