import json

# Server -> client
YOUR_ID = 'yourID'
PONG = 'pong'
# Client -> server, answered locally
PING = 'ping'


class MalformedEnvelope(ValueError):
    """A frame or payload that lacks what is needed to route it."""


def encode_frame(event, data=None):
    return json.dumps({'event': event, 'data': data})


def decode_frame(message):
    """Parse one text frame into (event, payload).

    A frame whose only keys are 'event' and 'data' carries its payload under
    'data'. Any other frame is flat: every key except 'event' is the payload,
    so a flat file-send keeps its own 'data' field.
    """
    try:
        frame = json.loads(message)
    except ValueError as e:
        raise MalformedEnvelope(f"invalid JSON: {e}") from e
    if not isinstance(frame, dict):
        raise MalformedEnvelope(f"frame must be an object, got {type(frame).__name__}")
    event = frame.get('event')
    if not isinstance(event, str) or not event:
        raise MalformedEnvelope("frame has no event name")
    if frame.keys() == {'event', 'data'}:
        return event, frame['data']
    return event, {k: v for k, v in frame.items() if k != 'event'}
