from __future__ import annotations

import json
import os
import logging

import redis

from .schema import EventEnvelope
from .metrics import get_events_total


STREAM_EVENTS = os.getenv("POOL_EVENTS_STREAM", "poolledger.events")
STREAM_DLQ = os.getenv("POOL_EVENTS_DLQ", "poolledger.dlq")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

log = logging.getLogger("poolledger.events")


def _get_redis():
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def to_json_line(env: EventEnvelope) -> str:
    return json.dumps({
        "schema_version": env.schema_version,
        "correlation_id": env.correlation_id,
        "sequence": env.sequence,
        "event": env.event.model_dump(),
    }, separators=(",", ":"))


def publish(env: EventEnvelope) -> None:
    """Append a committed event to the Redis stream and log it as one JSON line.

    The ledger has already committed when this runs, so an unreachable Redis is
    logged and the event goes to the DLQ if possible; it never raises.
    """
    get_events_total().labels(env.event.event_type).inc()

    line = to_json_line(env)
    try:
        r = _get_redis()
        r.xadd(STREAM_EVENTS, {"json": line})
    except redis.RedisError as e:
        log.warning("event stream unavailable (%s); trying DLQ", e)
        try:
            r = _get_redis()
            r.xadd(STREAM_DLQ, {"json": line})
        except redis.RedisError as dlq_err:
            log.warning("event DLQ unavailable: %s", dlq_err)
    log.info(line)


def ensure_group(group: str) -> None:
    r = _get_redis()
    try:
        r.xgroup_create(name=STREAM_EVENTS, groupname=group, id="$", mkstream=True)
    except redis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise


def consume(group: str, consumer: str, block_ms: int = 15000):
    """Generator yielding (id, json_str) from the Redis Stream consumer group.

    Yields None when the block timeout passes without messages. Caller is
    responsible for XACK.
    """
    r = _get_redis()
    ensure_group(group)
    while True:
        resp = r.xreadgroup(group, consumer, {STREAM_EVENTS: ">"}, count=100, block=block_ms)
        if not resp:
            yield None
            continue
        # resp is list[(stream, [(id, {field:value}), ...])]
        for _stream, entries in resp:
            for msg_id, fields in entries:
                yield (msg_id, fields.get("json", ""))
