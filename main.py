import asyncio
import logging as log
import os
import sys
import signal
import traceback

from mmcos import consts
from mmcos.Client import Client, all_clients
from mmcos.config import ServerConfig
from mmcos.consts import SERVER_VERSION
from mmcos.service import MatchmakingService
from mmcos.utils import timeit_context

log.basicConfig(level=os.environ.get("MMCOS_LOG_LEVEL", "DEBUG").upper())
log.getLogger('asyncio').setLevel(log.WARNING)


def cleanup_clients(*args):
    consts.SHUTDOWN = True
    consts.SHUTDOWN_EVT.set()
    _clients = list(all_clients)
    for client in _clients:
        log.info(f"Disconnecting client: {client.client_ip}")
        client.disconnect()
    all_clients.clear()
    del _clients
    log.info(f"Disconnected all clients")
    sys.exit(0)


async def main():
    signal.signal(signal.SIGTERM, cleanup_clients)
    signal.signal(signal.SIGINT, cleanup_clients)

    with timeit_context("Load config"):
        config = ServerConfig.from_env()
    log.info(f"[version: {SERVER_VERSION}] Starting {config.name}: {config.host_name}:{config.port}")
    log.info(f"Config: max_players={config.max_players}, solo_autostart={config.solo_autostart}, "
             f"force_game_type={config.force_game_type}")

    service = MatchmakingService(config)
    service.start_background_tasks()

    async def connection_cb(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        c = Client(reader, writer, service)
        try:
            await c.main_loop()
        except Exception as e:
            if c.disconnected:
                return
            log.warning(f"Exception in client main loop: {e}\n{''.join(traceback.format_exception(e))}")

    # start socket server and run forever
    server = await asyncio.start_server(connection_cb, config.host_name, config.port)
    try:
        async with server:
            await server.serve_forever()
    finally:
        await service.shutdown()


if __name__ == "__main__":
    log.info("Server starting...")
    asyncio.run(main())
