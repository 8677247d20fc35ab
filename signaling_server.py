import argparse
import asyncio
import logging
import ssl

import websockets
from aiohttp import web

from connection_registry import ConnectionRegistry
from protocol import PING, PONG, YOUR_ID, MalformedEnvelope, decode_frame
from server_config import load_config
from signal_routes import ROUTES, deliver, relay

logger = logging.getLogger(__name__)

REGISTRY_KEY = web.AppKey("registry", ConnectionRegistry)


class SignalingServer:
    """Per-connection event loop of the relay.

    Each WebSocket gets its session identity from the transport's connection
    id, is registered, told its identity with a yourID event, and then has
    its frames dispatched one at a time in arrival order.
    """

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else ConnectionRegistry()

    async def handle_websocket(self, websocket):
        identity = str(websocket.id)
        client_ip = websocket.remote_address[0] if websocket.remote_address else 'unknown'
        self.registry.register(identity, websocket)
        logger.info(f"A user connected: {identity} ({client_ip})")
        try:
            await deliver(websocket, YOUR_ID, identity)
            async for message in websocket:
                if isinstance(message, str):
                    await self.dispatch(identity, websocket, message)
                else:
                    logger.debug(f"Ignoring binary frame from {identity}: {len(message)} bytes")
        except websockets.ConnectionClosed:
            pass
        except Exception as e:
            logger.error(f"WebSocket error for {identity}: {e}", exc_info=True)
        finally:
            self.registry.remove(identity, websocket)
            logger.info(f"User disconnected: {identity}")

    async def dispatch(self, identity, websocket, message):
        try:
            event, payload = decode_frame(message)
            if event == PING:
                timestamp = payload.get('timestamp') if isinstance(payload, dict) else None
                await deliver(websocket, PONG, {'timestamp': timestamp})
            elif event in ROUTES:
                await relay(self.registry, event, payload, sender=identity)
            else:
                logger.debug(f"Ignoring unknown event {event!r} from {identity}")
        except MalformedEnvelope as e:
            logger.warning(f"Dropping malformed envelope from {identity}: {e}")


async def serve_index(request):
    logger.debug(f"HTTP request from {request.remote} for /")
    return web.Response(text="WebRTC Server is running!")


async def serve_health(request):
    registry = request.app[REGISTRY_KEY]
    return web.json_response({'status': 'ok', 'connections': len(registry)})


def cors_middleware(allowed_origin):
    @web.middleware
    async def middleware(request, handler):
        response = await handler(request)
        response.headers['Access-Control-Allow-Origin'] = allowed_origin
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST'
        return response
    return middleware


async def init_app(registry, allowed_origin='*'):
    app = web.Application(middlewares=[cors_middleware(allowed_origin)])
    app[REGISTRY_KEY] = registry
    app.router.add_get('/', serve_index)
    app.router.add_get('/health', serve_health)
    return app


def build_ssl_context(config):
    certfile, keyfile = config.get('ssl_certfile'), config.get('ssl_keyfile')
    if not certfile and not keyfile:
        return None
    if not (certfile and keyfile):
        raise ValueError("Both ssl_certfile and ssl_keyfile are required for TLS")
    ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    logger.info("SSL certificates loaded successfully")
    return ssl_context


def websocket_origins(allowed_origin):
    if allowed_origin == '*':
        return None
    # None admits non-browser clients that send no Origin header
    return [allowed_origin, None]


async def main(config):
    server = SignalingServer()
    ssl_context = build_ssl_context(config)
    http_scheme, ws_scheme = ('https', 'wss') if ssl_context else ('http', 'ws')
    host = config['host']

    app = await init_app(server.registry, config['allowed_origin'])
    runner = web.AppRunner(app)
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, config['http_port'], ssl_context=ssl_context)
        await site.start()
        logger.info(f"HTTP server started on {http_scheme}://{host}:{config['http_port']}")

        async with websockets.serve(
            server.handle_websocket,
            host,
            config['port'],
            ssl=ssl_context,
            origins=websocket_origins(config['allowed_origin']),
            max_size=config['max_message_size'],
        ):
            logger.info(f"Signaling WebSocket server started on {ws_scheme}://{host}:{config['port']}")
            await asyncio.Future()
    finally:
        await runner.cleanup()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="WebRTC call signaling relay")
    parser.add_argument("--config", help="path to a JSON config file")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--http-port", type=int)
    return parser.parse_args(argv)


def run(argv=None):
    args = parse_args(argv)
    config = load_config(args.config)
    for key in ('host', 'port', 'http_port'):
        value = getattr(args, key)
        if value is not None:
            config[key] = value
    logging.basicConfig(
        level=str(config['log_level']).upper(),
        format='%(asctime)s - %(levelname)s - %(message)s',
        force=True,
    )
    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("Signaling server stopped")


if __name__ == '__main__':
    run()
