import asyncio
import base64
import logging
import mimetypes
import os
import time

import websockets

from protocol import PING, YOUR_ID, decode_frame, encode_frame

logger = logging.getLogger(__name__)


class SignalingClient:
    """Thin asyncio wrapper over the relay's wire format.

    Keeps no call state: whether a call is active, or who is on the other
    end, is for the caller of this class to track.
    """

    def __init__(self, url, ssl_context=None):
        self.url = url
        self.ssl_context = ssl_context
        self.ws = None
        self.identity = None

    async def connect(self, timeout=10):
        self.ws = await websockets.connect(self.url, ssl=self.ssl_context)
        try:
            event, identity = await asyncio.wait_for(self.receive(), timeout)
            if event != YOUR_ID:
                raise ConnectionError(f"Expected {YOUR_ID} from server, got {event}")
        except BaseException:
            await self.close()
            raise
        self.identity = identity
        logger.info(f"Connected to {self.url} as {identity}")
        return identity

    async def close(self):
        if self.ws is not None:
            await self.ws.close()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def emit(self, event, data=None):
        await self.ws.send(encode_frame(event, data))

    async def receive(self):
        """Wait for the next (event, payload) pair from the server."""
        while True:
            message = await self.ws.recv()
            if isinstance(message, str):
                return decode_frame(message)
            logger.debug(f"Ignoring binary frame: {len(message)} bytes")

    async def call(self, to, signal):
        await self.emit('call-initiate', {'to': to, 'from': self.identity, 'signal': signal})

    async def answer(self, to, signal):
        await self.emit('call-answer', {'to': to, 'signal': signal})

    async def reject(self, to):
        await self.emit('call-reject', {'to': to, 'from': self.identity})

    async def end_call(self, to):
        await self.emit('call-terminate', {'to': to})

    async def send_candidate(self, to, candidate):
        await self.emit('candidate-exchange', {'to': to, 'candidate': candidate})

    async def start_screen_share(self, to):
        await self.emit('screen-share-start', {'to': to, 'from': self.identity})

    async def stop_screen_share(self, to):
        await self.emit('screen-share-stop', {'to': to, 'from': self.identity})

    async def send_chat(self, to, text):
        await self.emit('chat-send', {'from': self.identity, 'to': to, 'text': text})

    async def send_file(self, to, path, file_type=None):
        with open(path, 'rb') as f:
            content = f.read()
        file_name = os.path.basename(path)
        if file_type is None:
            file_type = mimetypes.guess_type(file_name)[0] or 'application/octet-stream'
        await self.emit('file-send', {
            'from': self.identity,
            'to': to,
            'fileName': file_name,
            'fileType': file_type,
            'data': base64.b64encode(content).decode('ascii'),
        })
        logger.info(f"Sent file {file_name} ({len(content)} bytes) to {to}")

    async def ping(self):
        await self.emit(PING, {'timestamp': time.time()})
