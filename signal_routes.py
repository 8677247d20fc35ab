"""Call signaling and auxiliary relay routes.

Each inbound event kind maps to one Route: the event name emitted to the
target, the fields a payload must carry, and how the outbound payload is
built from the inbound one. Payload contents beyond those fields are opaque
and passed through untouched. No call state is kept here; a route is a
name-based forward to whoever is registered under 'to' right now.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import websockets
from websockets import State

from protocol import MalformedEnvelope, encode_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    outbound: str
    required: Tuple[str, ...]
    build: Optional[Callable[[dict], Any]] = None
    announce: Optional[str] = None


def _verbatim(data):
    return data


def _caller(data):
    return {'from': data['from'], 'signal': data['signal']}


def _sender(data):
    return {'from': data['from']}


def _sender_if_known(data):
    return {'from': data['from']} if 'from' in data else None


CALL_ROUTES: Dict[str, Route] = {
    'call-initiate': Route('call-incoming', ('to', 'from', 'signal'), _caller),
    'call-answer': Route('call-accepted', ('to', 'signal'), lambda d: d['signal']),
    'call-reject': Route('call-rejected', ('to',), _sender_if_known),
    'call-terminate': Route('call-ended', ('to',)),
}

AUXILIARY_ROUTES: Dict[str, Route] = {
    'candidate-exchange': Route('candidate-received', ('to', 'candidate'), lambda d: d['candidate']),
    'screen-share-start': Route('screen-share-started', ('to', 'from'), _sender,
                                announce="Screen sharing started by {from} for {to}"),
    'screen-share-stop': Route('screen-share-stopped', ('to',),
                               announce="Screen sharing stopped for {to}"),
    'chat-send': Route('chat-deliver', ('from', 'to', 'text'), _verbatim,
                       announce="Forwarding message from {from} to {to}: {text}"),
    'file-send': Route('file-deliver', ('from', 'to', 'fileName', 'fileType', 'data'), _verbatim,
                       announce="Forwarding file from {from} to {to}: {fileName} ({fileType})"),
}

ROUTES: Dict[str, Route] = {**CALL_ROUTES, **AUXILIARY_ROUTES}


def validate(event, payload, route):
    if not isinstance(payload, dict):
        raise MalformedEnvelope(f"{event} payload must be an object")
    missing = [name for name in route.required if payload.get(name) is None]
    if missing:
        raise MalformedEnvelope(f"{event} missing {', '.join(missing)}")
    if not isinstance(payload['to'], str):
        raise MalformedEnvelope(f"{event} target must be a string")


async def deliver(ws, event, data=None):
    """Send one event to a connection. Returns False if it could not be sent."""
    if ws.state != State.OPEN:
        logger.debug(f"Skipping {event}: connection not open")
        return False
    try:
        await ws.send(encode_frame(event, data))
    except websockets.ConnectionClosed:
        # The target's own handler sees the close and cleans up the registry
        logger.info(f"Connection closed while sending {event}")
        return False
    return True


async def relay(registry, event, payload, sender=None):
    """Forward an inbound event to the connection registered under payload['to'].

    Raises KeyError for an event with no route and MalformedEnvelope for a
    payload missing routing fields. Returns True only if the event was sent.
    """
    route = ROUTES[event]
    validate(event, payload, route)
    target = payload['to']
    if route.announce:
        logger.info(route.announce.format_map(payload))
    conn = registry.lookup(target)
    if conn is None:
        logger.debug(f"Dropping {event} from {sender}: no connection for {target}")
        return False
    data = route.build(payload) if route.build else None
    delivered = await deliver(conn.ws, route.outbound, data)
    if delivered:
        logger.debug(f"Relayed {event} from {sender} to {target} as {route.outbound}")
    return delivered
